"""
기본 대수적 해시 프리미티브: Poseidon 형태 스펀지
=================================================

지갑 프로토콜의 모든 해시는 FieldHasher를 거치며, FieldHasher는
이 모듈의 HashPrimitive 구현을 감싼다.

**구성 (Poseidon 형태)**:
  - 상태 폭 t = 4 (rate 3, capacity 1)
  - S-box: x ↦ x⁵  (gcd(5, p-1) = 1 이므로 순열)
  - 라운드: 전체 라운드 R_F = 8 (앞 4 + 뒤 4), 부분 라운드 R_P = 56
  - MDS 행렬: 코시(Cauchy) 행렬 M[i][j] = 1 / (xᵢ + yⱼ)
  - 라운드 상수: SHA-256(레이블 ‖ 라운드 ‖ 위치) mod p
    (Transcript의 challenge_scalar와 같은 방식의 nothing-up-my-sleeve 유도)

  ┌───────────────────────────────────────────────┐
  │  capacity = len(inputs) · 2⁶⁴                 │
  │  for chunk in inputs (3개씩):                 │
  │      state[1..3] += chunk                      │
  │      state = permute(state)                    │
  │  return state[1]                               │
  └───────────────────────────────────────────────┘

  입력 길이를 capacity에 넣으므로 [a]와 [a, 0]은 서로 다른 해시가 된다.

**호환성 주의**:
  이 구현은 Barretenberg의 poseidon2Hash와 비트 단위로 호환되지 않는다.
  외부 구현과 같은 커밋먼트가 필요하면 실제 프리미티브를 감싼
  HashPrimitive를 FieldHasher에 주입해야 한다.

사용 예시:
    >>> sponge = PoseidonSponge()
    >>> h = sponge.hash([FR(1), FR(2)])
"""

import hashlib
from abc import ABC, abstractmethod

from zkwallet.field import FR, CURVE_ORDER


WIDTH = 4
RATE = WIDTH - 1
FULL_ROUNDS = 8
PARTIAL_ROUNDS = 56
ALPHA = 5

DEFAULT_LABEL = b"zkwallet.poseidon.v1"


class HashPrimitive(ABC):
    """불투명한 해시 프리미티브 경계: hash(list[FR]) -> FR."""

    @abstractmethod
    def hash(self, elements):
        """필드 원소 리스트를 하나의 필드 원소로 해싱한다."""


def _derive_round_constants(label, rounds, width):
    constants = []
    for r in range(rounds):
        row = []
        for i in range(width):
            h = hashlib.sha256(label + r.to_bytes(2, "big") + i.to_bytes(1, "big"))
            row.append(int.from_bytes(h.digest(), "big") % CURVE_ORDER)
        constants.append(row)
    return constants


def _cauchy_mds(width):
    # xᵢ = i, yⱼ = width + j → xᵢ + yⱼ ∈ [width, 3·width-2], 모두 0이 아님
    p = CURVE_ORDER
    return [
        [pow(i + width + j, p - 2, p) for j in range(width)]
        for i in range(width)
    ]


class PoseidonSponge(HashPrimitive):
    """Poseidon 형태 순열 위의 고정 폭 스펀지.

    내부 연산은 속도를 위해 FR 객체 대신 파이썬 정수 mod p로 수행하고,
    결과만 FR로 감싸 반환한다.

    속성:
        round_constants: (R_F + R_P) × t 상수 행렬
        mds: t × t 코시 MDS 행렬
    """

    def __init__(self, label=DEFAULT_LABEL):
        self.label = label
        self.round_constants = _derive_round_constants(
            label, FULL_ROUNDS + PARTIAL_ROUNDS, WIDTH
        )
        self.mds = _cauchy_mds(WIDTH)

    def _mix(self, state):
        p = CURVE_ORDER
        return [
            sum(m * s for m, s in zip(row, state)) % p
            for row in self.mds
        ]

    def permute(self, state):
        """Poseidon 순열: 전체 라운드 4 → 부분 라운드 56 → 전체 라운드 4."""
        p = CURVE_ORDER
        half = FULL_ROUNDS // 2
        state = list(state)
        for r, constants in enumerate(self.round_constants):
            state = [(s + c) % p for s, c in zip(state, constants)]
            if r < half or r >= half + PARTIAL_ROUNDS:
                state = [pow(s, ALPHA, p) for s in state]
            else:
                state[0] = pow(state[0], ALPHA, p)
            state = self._mix(state)
        return state

    def hash(self, elements):
        values = [int(e) % CURVE_ORDER for e in elements]

        state = [0] * WIDTH
        state[0] = (len(values) << 64) % CURVE_ORDER

        chunks = [values[i:i + RATE] for i in range(0, len(values), RATE)] or [[]]
        for chunk in chunks:
            for i, v in enumerate(chunk):
                state[1 + i] = (state[1 + i] + v) % CURVE_ORDER
            state = self.permute(state)

        return FR(state[1])
