"""
지갑 프로토콜 오류 분류 (Error Taxonomy)
=========================================

모든 오류는 호출자에게 예외로 전파된다. 내부 재시도는 없다.
재시도 여부는 호출자가 결정하며, 재시도 시에는 반드시 새로운
WalletState 스냅샷과 새로운 Merkle 포함 증명으로 처음부터 다시 시작해야 한다.

  ┌──────────────────────────────┬──────────────────────────────────────┐
  │  오류                        │  의미                                 │
  ├──────────────────────────────┼──────────────────────────────────────┤
  │  ShapeMismatch               │  배열 길이 / 경로 깊이 불일치 (치명)   │
  │  InvalidFieldEncoding        │  정규 필드 인코딩이 아님               │
  │  InvalidAction               │  잘못된 액션 파라미터                  │
  │  StaleOrInvalidMerkleProof   │  재계산 루트 ≠ 기대 루트 (재조회 필요) │
  │  InsufficientBalance         │  잔고 부족                             │
  │  NoAvailableOrderSlot        │  주문 슬롯 없음 / 이미 사용 중          │
  │  OrderSlotEmpty              │  취소할 주문이 없음                    │
  │  KeysNotFound                │  키 재료 누락 (치명)                   │
  │  ProofGenerationFailed       │  증명 엔진 실패 (원본 메시지 보존)      │
  │  TransitionRejected          │  백엔드 재검증 실패                    │
  └──────────────────────────────┴──────────────────────────────────────┘
"""


class WalletError(Exception):
    """지갑 프로토콜 오류의 기반 클래스."""


class ShapeMismatch(WalletError, ValueError):
    """고정 길이 배열 또는 Merkle 경로 깊이가 맞지 않는다.

    절대 자르거나(truncate) 채우지(pad) 않는다.
    """

    def __init__(self, what, expected, actual):
        self.what = what
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{what}: 길이 {expected}이어야 하지만 {actual}입니다"
        )


class InvalidFieldEncoding(WalletError, ValueError):
    """값이 정규 부호 없는 정수/필드 인코딩이 아니다."""


class InvalidAction(WalletError, ValueError):
    """액션 파라미터가 유효하지 않다 (인덱스 범위, 방향, 금액 등)."""


class StaleOrInvalidMerkleProof(WalletError):
    """재계산한 Merkle 루트가 기대 루트와 다르다.

    호출자는 상태를 다시 조회해야 한다.
    """

    def __init__(self, expected_root, computed_root):
        self.expected_root = expected_root
        self.computed_root = computed_root
        super().__init__(
            f"Merkle 루트 불일치: 기대값 {int(expected_root)}, "
            f"계산값 {int(computed_root)}"
        )


class InsufficientBalance(WalletError):
    """사용 가능 잔고가 요청 금액보다 적다."""

    def __init__(self, token_index, available, required):
        self.token_index = token_index
        self.available = available
        self.required = required
        super().__init__(
            f"잔고 부족: 토큰 {token_index}, 보유 {available}, 필요 {required}"
        )


class NoAvailableOrderSlot(WalletError):
    """주문을 넣을 빈 슬롯이 없다 (지정 슬롯이 사용 중이거나 전부 찼음)."""


class OrderSlotEmpty(WalletError):
    """취소 대상 슬롯이 비어 있다."""


class KeysNotFound(WalletError):
    """pk_root, pk_match, sk_match 중 하나 이상이 없다."""


class ProofGenerationFailed(WalletError):
    """증명 엔진이 실패했다. 원본 메시지를 그대로 보존한다."""


class TransitionRejected(WalletError):
    """백엔드 측 재검증(널리파이어/루트/증명)이 실패했다."""
