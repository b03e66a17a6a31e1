"""
지갑 데이터 모델
================

  WalletState   평문 지갑 내용 (잔고, 예약 잔고, 주문 슬롯, 수수료, 블라인더)
  Order         단일 주문 {price, qty, side, token_in, token_out}
  Keys          {pk_root, pk_match, sk_match}
  MerklePath    {index, siblings}
  TransferOp    입출금 연산
  OrderOp       주문 생성/취소 연산
  Operations    {transfer?, order?}: 하나 또는 둘 다 (둘 다 없으면 퇴화 액션)

모든 객체는 불변(frozen)이다. 상태 전이는 기존 객체를 고치지 않고
새 객체를 만든다. 배열 길이는 고정이며 validate()가 검사한다.

잔고는 FR이 아닌 파이썬 정수로 보관한다. FR로 보관하면 음수 잔고가
조용히 p - k로 감싸지기 때문이다.
"""

from dataclasses import dataclass, field

from zkwallet.errors import KeysNotFound, ShapeMismatch
from zkwallet.field import parse_uint, to_field


# operation_type / direction / side 상수
DEPOSIT = 0
WITHDRAW = 1

ORDER_CREATE = 0
ORDER_CANCEL = 1

BUY = 0
SELL = 1

OP_TRANSFER = 0
OP_ORDER = 1
OP_BOTH = 2


def _uint_tuple(values):
    return tuple(parse_uint(v) for v in values)


# ─────────────────────────────────────────────────────────────────────
# 주문 / 지갑 상태
# ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Order:
    price: int
    qty: int
    side: int
    token_in: int
    token_out: int

    def __post_init__(self):
        for name in ("price", "qty", "side", "token_in", "token_out"):
            object.__setattr__(self, name, parse_uint(getattr(self, name)))

    @property
    def committed_amount(self):
        """주문이 token_out에서 예약하는 양.

        BUY: price · qty (지불 토큰으로 환산한 총액)
        SELL: qty
        """
        if self.side == BUY:
            return self.price * self.qty
        return self.qty

    def fields(self):
        """해싱 순서: (price, qty, side, token_in, token_out)"""
        return [self.price, self.qty, self.side, self.token_in, self.token_out]


@dataclass(frozen=True)
class WalletState:
    available_balances: tuple
    reserved_balances: tuple
    orders_list: tuple
    fees: int = 0
    blinder: int = 0

    def __post_init__(self):
        object.__setattr__(self, "available_balances", _uint_tuple(self.available_balances))
        object.__setattr__(self, "reserved_balances", _uint_tuple(self.reserved_balances))
        orders = []
        for order in self.orders_list:
            if order is None or isinstance(order, Order):
                orders.append(order)
            else:
                orders.append(Order(**order))
        object.__setattr__(self, "orders_list", tuple(orders))
        object.__setattr__(self, "fees", parse_uint(self.fees))
        object.__setattr__(self, "blinder", parse_uint(self.blinder))

    @classmethod
    def empty(cls, config, blinder=0):
        """초기화 직후의 빈 지갑."""
        return cls(
            available_balances=[0] * config.n_tokens,
            reserved_balances=[0] * config.n_tokens,
            orders_list=[None] * config.max_pending_orders,
            fees=0,
            blinder=blinder,
        )

    def validate(self, config):
        """고정 길이를 검사한다. 틀리면 ShapeMismatch."""
        if len(self.available_balances) != config.n_tokens:
            raise ShapeMismatch("available_balances", config.n_tokens, len(self.available_balances))
        if len(self.reserved_balances) != config.n_tokens:
            raise ShapeMismatch("reserved_balances", config.n_tokens, len(self.reserved_balances))
        if len(self.orders_list) != config.max_pending_orders:
            raise ShapeMismatch("orders_list", config.max_pending_orders, len(self.orders_list))
        return self


# ─────────────────────────────────────────────────────────────────────
# 키 / Merkle 경로
# ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Keys:
    pk_root: object = None
    pk_match: object = None
    sk_match: object = field(default=None, repr=False)

    def require(self):
        """세 키가 모두 있는지 확인하고 FR로 정규화한 Keys를 반환한다.

        Raises:
            KeysNotFound: 하나라도 None 또는 빈 문자열일 때
        """
        missing = []
        for name in ("pk_root", "pk_match", "sk_match"):
            value = getattr(self, name)
            if value is None or (isinstance(value, str) and not value):
                missing.append(name)
        if missing:
            raise KeysNotFound(f"키 재료가 없습니다: {', '.join(missing)}")
        return Keys(
            pk_root=to_field(self.pk_root),
            pk_match=to_field(self.pk_match),
            sk_match=to_field(self.sk_match),
        )


@dataclass(frozen=True)
class MerklePath:
    index: int
    siblings: tuple

    def __post_init__(self):
        object.__setattr__(self, "index", parse_uint(self.index))
        object.__setattr__(self, "siblings", tuple(to_field(s) for s in self.siblings))


# ─────────────────────────────────────────────────────────────────────
# 연산 (Operations)
# ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TransferOp:
    direction: int
    token_index: int
    amount: int
    permit2_nonce: str = None
    permit2_deadline: str = None
    permit2_signature: str = None


@dataclass(frozen=True)
class OrderOp:
    operation_type: int
    order_index: int = None
    order_data: Order = None
    order_id: str = None


@dataclass(frozen=True)
class Operations:
    transfer: TransferOp = None
    order: OrderOp = None

    @property
    def operation_type(self):
        """회로의 operation_type: 0=transfer, 1=order, 2=both.

        둘 다 없는 퇴화 경우는 0 (모든 transfer 필드가 0인 transfer).
        """
        if self.transfer is not None and self.order is not None:
            return OP_BOTH
        if self.order is not None:
            return OP_ORDER
        return OP_TRANSFER
