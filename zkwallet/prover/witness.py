"""
Witness 조립
============

회로 입력은 이름 있는 맵이다. 키 이름과 중첩 구조는 회로(main.nr)의
파라미터 이름과 정확히 같아야 한다. 값은 모두 10진 문자열이다.

  공개 입력:  old_wallet_commitment, new_wallet_commitment, old_merkle_root,
             transfer_direction, transfer_mint, transfer_amount, operation_type
  비공개 입력: sk_match, old_wallet{...}, old_index, old_hash_path, new_blinder,
             transfer_index, order_index, order_direction, order_price,
             order_quantity, order_token_in, order_token_out, order_operation_type

**연산 평탄화 (flatten_operations)**:
  Operations {transfer?, order?}의 네 가지 경우를 모두 다룬다.
  없는 필드는 "0"으로 채운다.

  | transfer | order | operation_type |
  |----------|-------|----------------|
  |    O     |   X   |       0        |
  |    X     |   O   |       1        |
  |    O     |   O   |       2        |
  |    X     |   X   |       0 (퇴화) |
"""

from zkwallet.field import field_str


ZERO_STR = "0"


def flatten_operations(operations):
    """Operations → 회로의 연산 스칼라 필드 맵."""
    flat = {
        "operation_type": field_str(operations.operation_type),
        "transfer_direction": ZERO_STR,
        "transfer_mint": ZERO_STR,
        "transfer_amount": ZERO_STR,
        "order_index": ZERO_STR,
        "order_operation_type": ZERO_STR,
        "order_direction": ZERO_STR,
        "order_price": ZERO_STR,
        "order_quantity": ZERO_STR,
        "order_token_in": ZERO_STR,
        "order_token_out": ZERO_STR,
    }

    transfer = operations.transfer
    if transfer is not None:
        flat["transfer_direction"] = field_str(transfer.direction)
        flat["transfer_mint"] = field_str(transfer.token_index)
        flat["transfer_amount"] = field_str(transfer.amount)

    order = operations.order
    if order is not None:
        if order.order_index is not None:
            flat["order_index"] = field_str(order.order_index)
        flat["order_operation_type"] = field_str(order.operation_type)
        data = order.order_data
        if data is not None:
            flat["order_direction"] = field_str(data.side)
            flat["order_price"] = field_str(data.price)
            flat["order_quantity"] = field_str(data.qty)
            flat["order_token_in"] = field_str(data.token_in)
            flat["order_token_out"] = field_str(data.token_out)

    # 회로는 transfer_index를 transfer_mint와 같은 값으로 받는다
    flat["transfer_index"] = flat["transfer_mint"]
    return flat


def build_update_witness(old_state, keys, old_nonce, old_order_hashes,
                         old_commitment, new_commitment, old_merkle_root,
                         old_index, old_siblings, new_blinder, flat_ops):
    """wallet_update_state 회로의 전체 witness."""
    return {
        # 공개 입력
        "old_wallet_commitment": field_str(old_commitment),
        "new_wallet_commitment": field_str(new_commitment),
        "old_merkle_root": field_str(old_merkle_root),
        "transfer_direction": flat_ops["transfer_direction"],
        "transfer_mint": flat_ops["transfer_mint"],
        "transfer_amount": flat_ops["transfer_amount"],
        "operation_type": flat_ops["operation_type"],

        # 비공개 입력
        "sk_match": field_str(keys.sk_match),
        "old_wallet": {
            "available_balances": [field_str(v) for v in old_state.available_balances],
            "reserved_balances": [field_str(v) for v in old_state.reserved_balances],
            "orders_list": [field_str(h) for h in old_order_hashes],
            "fees": field_str(old_state.fees),
            "keys": {
                "pk_root": field_str(keys.pk_root),
                "pk_match": field_str(keys.pk_match),
                "nonce": field_str(old_nonce),
            },
            "blinder": field_str(old_state.blinder),
        },
        "old_index": field_str(old_index),
        "old_hash_path": [field_str(s) for s in old_siblings],
        "new_blinder": field_str(new_blinder),

        "transfer_index": flat_ops["transfer_index"],
        "order_index": flat_ops["order_index"],
        "order_direction": flat_ops["order_direction"],
        "order_price": flat_ops["order_price"],
        "order_quantity": flat_ops["order_quantity"],
        "order_token_in": flat_ops["order_token_in"],
        "order_token_out": flat_ops["order_token_out"],
        "order_operation_type": flat_ops["order_operation_type"],
    }


def build_init_witness(initial_commitment, keys, blinder):
    """wallet_init_state 회로의 witness."""
    return {
        "initial_commitment": field_str(initial_commitment),
        "pk_root": field_str(keys.pk_root),
        "pk_match": field_str(keys.pk_match),
        "blinder": field_str(blinder),
    }
