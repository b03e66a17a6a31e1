"""
TransitionBuilder: 순수 상태 전이 함수
======================================

  apply(old_state, action, old_nonce) → (new_state, operations)

I/O가 없는 순수 함수다. old_state는 절대 수정하지 않는다.
검증에 실패하면 예외를 던지고, 호출자는 손대지 않은 old_state를 그대로 가진다.

**지원 액션**:
  | 액션            | available[t]     | reserved[t]      | orders_list[i] |
  |-----------------|------------------|------------------|----------------|
  | 입금 (dir=0)    | + amount         |                  |                |
  | 출금 (dir=1)    | - amount (≥ 0)   |                  |                |
  | 주문 생성 (0)   | - committed      | + committed      | None → Order   |
  | 주문 취소 (1)   | + committed      | - committed      | Order → None   |

  committed = price·qty (BUY) 또는 qty (SELL), 토큰 t = token_out.
  transfer와 order가 함께 오면 transfer를 먼저 적용한다.

**블라인더 / nonce**:
  new_state.blinder는 매 전이마다 새로 뽑는다. 이전 블라인더에서
  유도하지 않는다. new_nonce = old_nonce + 1 (정확히 한 번).
"""

import secrets
import time

from zkwallet.config import DEFAULT_CONFIG
from zkwallet.errors import (
    InsufficientBalance,
    InvalidAction,
    NoAvailableOrderSlot,
    OrderSlotEmpty,
)
from zkwallet.field import CURVE_ORDER, parse_uint
from zkwallet.state import (
    BUY,
    DEPOSIT,
    ORDER_CANCEL,
    ORDER_CREATE,
    SELL,
    WITHDRAW,
    Operations,
    Order,
    OrderOp,
    TransferOp,
    WalletState,
)


def random_blinder():
    return secrets.randbelow(CURVE_ORDER)


def random_order_id():
    return f"{int(time.time() * 1000)}_{secrets.token_hex(6)}"


def next_nonce(old_nonce):
    """new_nonce = old_nonce + 1"""
    return parse_uint(old_nonce) + 1


def _index(value, name, upper):
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAction(f"{name}는 정수여야 합니다: {value!r}")
    if not 0 <= value < upper:
        raise InvalidAction(f"{name}는 0 이상 {upper - 1} 이하여야 합니다: {value}")
    return value


class TransitionBuilder:
    """지갑 상태 전이 계산기.

    Args:
        config: WalletConfig
        blinder_source: 새 블라인더를 반환하는 함수 (기본: secrets.randbelow)
        order_id_source: 새 주문 id를 반환하는 함수
    """

    def __init__(self, config=None, blinder_source=None, order_id_source=None):
        self.config = config if config is not None else DEFAULT_CONFIG
        self.blinder_source = blinder_source or random_blinder
        self.order_id_source = order_id_source or random_order_id

    # ─── 진입점 ───

    def apply(self, old_state, action, old_nonce):
        """액션을 적용한 새 상태와 Operations 기술자를 반환한다.

        Args:
            old_state: 현재 WalletState
            action: Operations (transfer 요청, order 요청, 또는 둘 다)
            old_nonce: 현재 nonce

        Returns:
            tuple: (new_state, operations)

        Raises:
            ShapeMismatch: old_state 배열 길이가 설정과 다를 때
            InvalidAction: 파라미터가 유효하지 않을 때
            InsufficientBalance, NoAvailableOrderSlot, OrderSlotEmpty
        """
        old_state.validate(self.config)
        parse_uint(old_nonce)

        available = list(old_state.available_balances)
        reserved = list(old_state.reserved_balances)
        orders = list(old_state.orders_list)

        transfer_op = None
        order_op = None
        if action.transfer is not None:
            transfer_op = self._apply_transfer(available, action.transfer)
        if action.order is not None:
            order_op = self._apply_order(available, reserved, orders, action.order)

        new_state = WalletState(
            available_balances=available,
            reserved_balances=reserved,
            orders_list=orders,
            fees=old_state.fees,
            blinder=self._fresh_blinder(old_state.blinder),
        )
        return new_state, Operations(transfer=transfer_op, order=order_op)

    next_nonce = staticmethod(next_nonce)

    # ─── 입출금 ───

    def _apply_transfer(self, available, transfer):
        direction = transfer.direction
        if direction not in (DEPOSIT, WITHDRAW) or isinstance(direction, bool):
            raise InvalidAction(f"direction은 0(DEPOSIT) 또는 1(WITHDRAW)이어야 합니다: {direction!r}")
        token = _index(transfer.token_index, "token_index", self.config.n_tokens)
        amount = parse_uint(transfer.amount)
        if amount == 0:
            raise InvalidAction("amount는 0보다 커야 합니다")

        if direction == DEPOSIT:
            balance = available[token] + amount
            if balance >= CURVE_ORDER:
                raise InvalidAction(f"토큰 {token} 잔고가 필드 범위를 넘습니다")
            available[token] = balance
        else:
            if available[token] < amount:
                raise InsufficientBalance(token, available[token], amount)
            available[token] -= amount

        return TransferOp(
            direction=direction,
            token_index=token,
            amount=amount,
            permit2_nonce=transfer.permit2_nonce,
            permit2_deadline=transfer.permit2_deadline,
            permit2_signature=transfer.permit2_signature,
        )

    # ─── 주문 ───

    def _apply_order(self, available, reserved, orders, request):
        if request.operation_type == ORDER_CREATE and not isinstance(request.operation_type, bool):
            return self._create_order(available, reserved, orders, request)
        if request.operation_type == ORDER_CANCEL and not isinstance(request.operation_type, bool):
            return self._cancel_order(available, reserved, orders, request)
        raise InvalidAction(
            f"operation_type은 0(CREATE) 또는 1(CANCEL)이어야 합니다: {request.operation_type!r}"
        )

    def _free_slot(self, orders, requested):
        if requested is None:
            for i, slot in enumerate(orders):
                if slot is None:
                    return i
            raise NoAvailableOrderSlot(f"빈 주문 슬롯이 없습니다 (총 {len(orders)}개)")
        index = _index(requested, "order_index", self.config.max_pending_orders)
        if orders[index] is not None:
            raise NoAvailableOrderSlot(f"주문 슬롯 {index}는 이미 사용 중입니다")
        return index

    def _validate_order(self, order):
        n = self.config.n_tokens
        if order.price == 0:
            raise InvalidAction("price는 0보다 커야 합니다")
        if order.qty == 0:
            raise InvalidAction("qty는 0보다 커야 합니다")
        if order.side not in (BUY, SELL):
            raise InvalidAction(f"side는 0(BUY) 또는 1(SELL)이어야 합니다: {order.side}")
        if order.token_in >= n:
            raise InvalidAction(f"token_in은 0 이상 {n - 1} 이하여야 합니다: {order.token_in}")
        if order.token_out >= n:
            raise InvalidAction(f"token_out은 0 이상 {n - 1} 이하여야 합니다: {order.token_out}")
        if order.token_in == order.token_out:
            raise InvalidAction("token_in과 token_out은 달라야 합니다")

    def _create_order(self, available, reserved, orders, request):
        if request.order_data is None:
            raise InvalidAction("CREATE에는 order_data가 필요합니다")
        order = request.order_data
        if not isinstance(order, Order):
            order = Order(**order)
        self._validate_order(order)
        index = self._free_slot(orders, request.order_index)

        token = order.token_out
        amount = order.committed_amount
        if available[token] < amount:
            raise InsufficientBalance(token, available[token], amount)

        available[token] -= amount
        reserved[token] += amount
        orders[index] = order

        return OrderOp(
            operation_type=ORDER_CREATE,
            order_index=index,
            order_data=order,
            order_id=self.order_id_source(),
        )

    def _cancel_order(self, available, reserved, orders, request):
        if request.order_index is None:
            raise InvalidAction("CANCEL에는 order_index가 필요합니다")
        index = _index(request.order_index, "order_index", self.config.max_pending_orders)
        order = orders[index]
        if order is None:
            raise OrderSlotEmpty(f"주문 슬롯 {index}에 취소할 주문이 없습니다")

        token = order.token_out
        amount = order.committed_amount
        if reserved[token] < amount:
            raise InvalidAction(
                f"토큰 {token} 예약 잔고({reserved[token]})가 주문 예약량({amount})보다 적습니다"
            )

        reserved[token] -= amount
        available[token] += amount
        orders[index] = None

        return OrderOp(
            operation_type=ORDER_CANCEL,
            order_index=index,
            order_data=order,
            order_id="0",
        )

    # ─── 블라인더 ───

    def _fresh_blinder(self, old_blinder):
        blinder = parse_uint(self.blinder_source())
        while blinder == old_blinder or blinder >= CURVE_ORDER:
            blinder = parse_uint(self.blinder_source())
        return blinder
