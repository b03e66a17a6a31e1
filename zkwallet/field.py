"""
지갑 프로토콜 기반 모듈: 스칼라 필드(Scalar Field)
==================================================

지갑 커밋먼트, Merkle 경로, 널리파이어, 회로 입력은 모두
bn128(BN254) 곡선의 스칼라 필드 원소로 표현된다.

**유한체 FR**:
  bn128 타원곡선의 스칼라 필드. 증명 엔진(Noir/Barretenberg)이
  사용하는 필드와 같은 위수를 가진다.
  - 위수(order) p ≈ 2^254, 소수체(prime field)

**정규화(canonicalization)**:
  잔고는 외부에서 10진 문자열로, 키(pk_root)는 0x 16진 문자열로 들어온다.
  해싱 전에 모든 값은 단 하나의 파서(parse_uint)를 거쳐 정수로 변환되며,
  출력은 항상 str(int(value)) 형태의 10진 문자열이다.
  → 같은 값이 두 가지 인코딩으로 해싱되는 일이 없다.

사용 예시:
    >>> from zkwallet.field import FR, to_field, field_str
    >>> to_field("1000")          # FR(1000)
    >>> to_field("0x10")          # FR(16)
    >>> field_str(FR(42))         # "42"
"""

import re

from py_ecc.fields import bn128_FQ as FQ
from py_ecc import bn128

from zkwallet.errors import InvalidFieldEncoding


# ─────────────────────────────────────────────────────────────────────
# 유한체(Finite Field) FR
# ─────────────────────────────────────────────────────────────────────

class FR(FQ):
    """bn128 스칼라 필드 위의 유한체 원소.

    py_ecc의 FQ 클래스를 상속하여 +, -, *, /, ** 등의 필드 연산을 제공한다.

    속성:
        field_modulus: bn128 곡선 위수 (소수 p)
    """
    field_modulus = bn128.curve_order


# 곡선 위수 (필드 크기)
CURVE_ORDER = bn128.curve_order

ZERO = FR(0)

_DECIMAL_RE = re.compile(r"^[0-9]+$")
_HEX_RE = re.compile(r"^0x[0-9a-fA-F]+$")


# ─────────────────────────────────────────────────────────────────────
# 정규 변환 (canonical conversion)
# ─────────────────────────────────────────────────────────────────────

def parse_uint(value):
    """값을 부호 없는 정수로 정규 변환한다.

    허용되는 입력:
        - int (bool 제외), 0 이상
        - FR 원소
        - 10진 숫자 문자열 ("1000")
        - 0x 접두사 16진 문자열 ("0xabc")

    거부되는 입력:
        부호(+/-), 공백, 소수점, float, bool, None

    Args:
        value: 변환할 값

    Returns:
        int: 0 이상의 정수

    Raises:
        InvalidFieldEncoding: 정규 인코딩이 아닐 때
    """
    if isinstance(value, FR):
        return int(value)
    if isinstance(value, bool):
        raise InvalidFieldEncoding(f"bool은 필드 값이 될 수 없습니다: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise InvalidFieldEncoding(f"음수는 허용되지 않습니다: {value}")
        return value
    if isinstance(value, str):
        if _DECIMAL_RE.match(value):
            return int(value, 10)
        if _HEX_RE.match(value):
            return int(value, 16)
        raise InvalidFieldEncoding(f"정규 정수 문자열이 아닙니다: {value!r}")
    raise InvalidFieldEncoding(
        f"지원하지 않는 필드 값 타입: {type(value).__name__}"
    )


def to_field(value):
    """값을 FR 원소로 변환한다.

    모듈러 축소(wrap-around)는 하지 않는다. p 이상의 값은
    서로 다른 두 입력이 같은 필드 원소로 해싱되는 것을 막기 위해 거부한다.

    Raises:
        InvalidFieldEncoding: 정규 인코딩이 아니거나 값이 p 이상일 때
    """
    if isinstance(value, FR):
        return value
    n = parse_uint(value)
    if n >= CURVE_ORDER:
        raise InvalidFieldEncoding(f"필드 위수를 초과하는 값입니다: {n}")
    return FR(n)


def to_fields(values):
    """리스트의 모든 값을 FR로 변환한다."""
    return [to_field(v) for v in values]


def field_str(value):
    """FR/정수 → 10진 문자열 (선행 0, 접두사 없음)."""
    return str(int(to_field(value)))


def fr_short(val):
    """FR → 축약 문자열 (로그 표시용)"""
    if val is None:
        return "None"
    s = str(int(val))
    if len(s) <= 10:
        return s
    return s[:4] + "..." + s[-4:]
