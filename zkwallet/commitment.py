"""
CommitmentCodec: 지갑 커밋먼트 유도
===================================

지갑 상태 + 키 + nonce + 블라인더를 하나의 필드 원소로 묶는다.
구조는 회로와의 계약이며 순서를 바꾸면 안 된다.

  ┌──────────────────────────────────────────────────────────┐
  │  available_hash = Hash(available_balances...)            │
  │  reserved_hash  = Hash(reserved_balances...)             │
  │  orders_hash    = Hash(order_hashes...)    ← OrderCodec  │
  │  keys_hash      = Hash(pk_root, pk_match, nonce)         │
  │                                                          │
  │  commitment = Hash(available_hash, reserved_hash,        │
  │                    orders_hash, keys_hash, fees, blinder)│
  └──────────────────────────────────────────────────────────┘

order_hashes에는 OrderCodec으로 미리 해싱한 값만 넣는다 (원본 주문 필드 X).
길이가 맞지 않으면 해싱 전에 ShapeMismatch를 던진다.

사용 예시:
    >>> codec = CommitmentCodec(hasher, config)
    >>> c = codec.commit_state(state, keys, nonce=0)
"""

from zkwallet.config import DEFAULT_CONFIG
from zkwallet.errors import ShapeMismatch
from zkwallet.field import to_field, to_fields
from zkwallet.hasher import default_hasher
from zkwallet.order import OrderCodec
from zkwallet.state import WalletState


class CommitmentCodec:
    """지갑 커밋먼트 계산기.

    Args:
        hasher: FieldHasher (기본: 공유 기본 해셔)
        config: WalletConfig (배열 길이 검사용)
    """

    def __init__(self, hasher=None, config=None):
        self.hasher = hasher if hasher is not None else default_hasher()
        self.config = config if config is not None else DEFAULT_CONFIG
        self.orders = OrderCodec(self.hasher)

    def _check_shapes(self, available, reserved, order_hashes):
        cfg = self.config
        if len(available) != cfg.n_tokens:
            raise ShapeMismatch("available_balances", cfg.n_tokens, len(available))
        if len(reserved) != cfg.n_tokens:
            raise ShapeMismatch("reserved_balances", cfg.n_tokens, len(reserved))
        if len(order_hashes) != cfg.max_pending_orders:
            raise ShapeMismatch("orders_list", cfg.max_pending_orders, len(order_hashes))

    def compute_commitment(self, available, reserved, order_hashes, fees,
                           pk_root, pk_match, nonce, blinder):
        """5단계 중첩 해시로 커밋먼트를 계산한다.

        모든 입력은 해싱 전에 정규 필드 값으로 변환된다.

        Args:
            available: 사용 가능 잔고 (길이 n_tokens)
            reserved: 예약 잔고 (길이 n_tokens)
            order_hashes: OrderCodec으로 해싱된 주문 슬롯 (길이 max_pending_orders)
            fees: 누적 수수료
            pk_root, pk_match: 공개 키
            nonce: 버전 카운터
            blinder: 버전별 블라인더

        Returns:
            FR: 지갑 커밋먼트

        Raises:
            ShapeMismatch: 배열 길이가 설정과 다를 때 (해싱 전)
        """
        self._check_shapes(available, reserved, order_hashes)

        available = to_fields(available)
        reserved = to_fields(reserved)
        order_hashes = to_fields(order_hashes)
        fees = to_field(fees)
        blinder = to_field(blinder)

        available_hash = self.hasher.hash(available)
        reserved_hash = self.hasher.hash(reserved)
        orders_hash = self.hasher.hash(order_hashes)
        keys_hash = self.hasher.hash([pk_root, pk_match, nonce])

        return self.hasher.hash([
            available_hash,
            reserved_hash,
            orders_hash,
            keys_hash,
            fees,
            blinder,
        ])

    def commit_state(self, state, keys, nonce, order_hashes=None):
        """WalletState의 커밋먼트. order_hashes가 없으면 직접 해싱한다."""
        if order_hashes is None:
            self._check_shapes(state.available_balances, state.reserved_balances,
                               state.orders_list)
            order_hashes = self.orders.hash_orders(state.orders_list)
        return self.compute_commitment(
            state.available_balances,
            state.reserved_balances,
            order_hashes,
            state.fees,
            keys.pk_root,
            keys.pk_match,
            nonce,
            state.blinder,
        )

    def initial_commitment(self, keys, blinder):
        """nonce 0인 빈 지갑의 커밋먼트 (wallet_init_state)."""
        state = WalletState.empty(self.config, blinder=blinder)
        return self.commit_state(state, keys, 0)
