"""
지갑 데이터 직렬화/역직렬화 헬퍼
================================

JSON 요청/응답과 TinyDB 레코드로 지갑 객체를 변환한다.
필드 값은 항상 10진 문자열(str(int))로 내보내고,
들어올 때는 정규 파서(to_field / parse_uint)로만 읽는다.

sk_match는 어떤 직렬화 결과에도 넣지 않는다.
"""

from zkwallet.errors import InvalidAction
from zkwallet.field import field_str
from zkwallet.state import (
    Operations,
    Order,
    OrderOp,
    TransferOp,
    WalletState,
)


# ─── FR ───

def serialize_fr(val):
    """FR → str(int)"""
    return field_str(val)


def serialize_fr_list(vals):
    return [serialize_fr(v) for v in vals]


# ─── Order / WalletState ───

def serialize_order(order):
    """Order → dict or None"""
    if order is None:
        return None
    return {
        "price": str(order.price),
        "qty": str(order.qty),
        "side": order.side,
        "token_in": order.token_in,
        "token_out": order.token_out,
    }


def deserialize_order(data):
    if data is None:
        return None
    return Order(
        price=data["price"],
        qty=data["qty"],
        side=data["side"],
        token_in=data["token_in"],
        token_out=data["token_out"],
    )


def serialize_state(state):
    return {
        "available_balances": [str(v) for v in state.available_balances],
        "reserved_balances": [str(v) for v in state.reserved_balances],
        "orders_list": [serialize_order(o) for o in state.orders_list],
        "fees": str(state.fees),
        "blinder": str(state.blinder),
    }


def deserialize_state(data):
    return WalletState(
        available_balances=data["available_balances"],
        reserved_balances=data["reserved_balances"],
        orders_list=[deserialize_order(o) for o in data["orders_list"]],
        fees=data.get("fees", "0"),
        blinder=data.get("blinder", "0"),
    )


# ─── MerklePath ───

def serialize_path(path):
    return {"index": path.index, "siblings": serialize_fr_list(path.siblings)}


# ─── Operations ───

def serialize_operations(operations):
    """Operations → dict (없는 쪽은 키를 생략)"""
    out = {}
    t = operations.transfer
    if t is not None:
        out["transfer"] = {
            "direction": t.direction,
            "token_index": t.token_index,
            "amount": str(t.amount),
        }
        for name in ("permit2_nonce", "permit2_deadline", "permit2_signature"):
            if getattr(t, name) is not None:
                out["transfer"][name] = getattr(t, name)
    o = operations.order
    if o is not None:
        out["order"] = {
            "operation_type": o.operation_type,
            "order_index": o.order_index,
            "order_data": serialize_order(o.order_data),
        }
        if o.order_id is not None:
            out["order"]["order_id"] = o.order_id
    return out


def deserialize_operations(data):
    """dict → Operations. 액션 요청과 응답 모두 같은 형태를 쓴다."""
    if not isinstance(data, dict):
        raise InvalidAction("action은 JSON 객체여야 합니다")
    unknown = set(data) - {"transfer", "order"}
    if unknown:
        raise InvalidAction(f"알 수 없는 action 키: {', '.join(sorted(unknown))}")

    transfer = None
    if data.get("transfer") is not None:
        t = data["transfer"]
        try:
            transfer = TransferOp(
                direction=t["direction"],
                token_index=t["token_index"],
                amount=t["amount"],
                permit2_nonce=t.get("permit2_nonce"),
                permit2_deadline=t.get("permit2_deadline"),
                permit2_signature=t.get("permit2_signature"),
            )
        except KeyError as exc:
            raise InvalidAction(f"transfer에 {exc.args[0]}가 없습니다") from exc

    order = None
    if data.get("order") is not None:
        o = data["order"]
        if "operation_type" not in o:
            raise InvalidAction("order에 operation_type이 없습니다")
        order_data = o.get("order_data")
        if order_data is not None:
            try:
                order_data = deserialize_order(order_data)
            except KeyError as exc:
                raise InvalidAction(f"order_data에 {exc.args[0]}가 없습니다") from exc
        order = OrderOp(
            operation_type=o["operation_type"],
            order_index=o.get("order_index"),
            order_data=order_data,
            order_id=o.get("order_id"),
        )

    return Operations(transfer=transfer, order=order)


# ─── 증명 결과 ───

def serialize_keys_public(keys):
    """공개 키만 내보낸다."""
    return {
        "pk_root": serialize_fr(keys.pk_root),
        "pk_match": serialize_fr(keys.pk_match),
    }


def serialize_proof_result(result):
    return {
        "proof": result.proof_hex,
        "public_inputs": result.public_inputs.to_dict(),
        "new_state": serialize_state(result.new_state),
        "new_nonce": str(result.new_nonce),
        "operations": serialize_operations(result.operations),
        "timing": result.timing,
    }


def serialize_init_result(result):
    return {
        "proof": result.proof_hex,
        "public_inputs": result.public_inputs.to_dict(),
        "state": serialize_state(result.state),
        "nonce": str(result.nonce),
        "timing": result.timing,
    }


def deserialize_proof(data):
    """0x hex → bytes"""
    if not isinstance(data, str):
        raise InvalidAction("proof는 0x 16진 문자열이어야 합니다")
    hex_part = data[2:] if data.startswith("0x") else data
    try:
        return bytes.fromhex(hex_part)
    except ValueError as exc:
        raise InvalidAction(f"proof가 올바른 16진 문자열이 아닙니다: {exc}") from exc

