"""
FieldHasher: 프로토콜의 유일한 해시 진입점
==========================================

커밋먼트, 주문 해시, Merkle 노드, 널리파이어는 모두
FieldHasher.hash()로만 계산한다. 다른 해시 함수나 문자열 해싱을
프로토콜 값에 사용하면 회로가 계산하는 값과 어긋난다.

**지연 초기화**:
  프리미티브를 직접 주입하지 않으면 프로세스 전역 LazyCell에서
  기본 PoseidonSponge를 꺼내 쓴다. 셀은 처음 해시할 때 한 번만 만들어진다.

사용 예시:
    >>> hasher = FieldHasher()
    >>> hasher.hash([1, 2, 3])         # FR
    >>> hasher.hash(["1000", "0x10"])   # 정규 변환 후 해싱
"""

from zkwallet.field import to_fields
from zkwallet.lazy import LazyCell
from zkwallet.poseidon import PoseidonSponge


DEFAULT_PRIMITIVE = LazyCell(PoseidonSponge)


class FieldHasher:
    """HashPrimitive를 감싸는 해셔.

    Args:
        primitive: HashPrimitive 구현. None이면 공유 기본 프리미티브를 쓴다.
        cell: primitive가 None일 때 사용할 LazyCell (기본: DEFAULT_PRIMITIVE)
    """

    def __init__(self, primitive=None, cell=None):
        self._primitive = primitive
        self._cell = cell if cell is not None else DEFAULT_PRIMITIVE

    @property
    def primitive(self):
        if self._primitive is None:
            self._primitive = self._cell.get()
        return self._primitive

    def hash(self, elements):
        """필드 원소 리스트를 해싱한다.

        입력은 순서에 민감하다: hash([a, b]) ≠ hash([b, a]).

        Args:
            elements: FR / int / 정규 문자열의 리스트

        Returns:
            FR: 해시값
        """
        return self.primitive.hash(to_fields(elements))


_default_hasher = LazyCell(FieldHasher)


def default_hasher():
    """공유 기본 FieldHasher를 반환한다."""
    return _default_hasher.get()
