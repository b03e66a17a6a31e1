"""
증명 엔진 경계 (Proving Engine Boundary)
=========================================

  prove(circuit_id, witness)            → (proof: bytes, public_inputs: list[FR])
  verify(circuit_id, proof, public_inputs) → bool

witness는 이름 있는 필드 맵이며 키 이름은 회로와의 계약이다.
public_inputs는 위치 벡터이고 zkwallet.public_inputs가 이름을 붙인다.

  ┌────────────────┬──────────────────────────────────────────────┐
  │  NativeEngine  │  회로 관계식을 호스트에서 재실행 (개발/테스트)  │
  │  NargoEngine   │  Noir nargo + Barretenberg bb CLI            │
  └────────────────┴──────────────────────────────────────────────┘

엔진은 생성 비용이 크므로 프로세스당 한 번만 만든다 (DEFAULT_ENGINE).
엔진 내부 오류는 EngineError로 올리고, 호출 측(prover)이
ProofGenerationFailed로 한 번 감싼다.
"""

from abc import ABC, abstractmethod

from zkwallet.config import ENGINE_NARGO
from zkwallet.lazy import LazyCell


CIRCUIT_INIT = "wallet_init_state"
CIRCUIT_UPDATE = "wallet_update_state"


class EngineError(RuntimeError):
    """증명 엔진이 witness를 만족시키지 못했거나 실행에 실패했다."""


class ProvingEngine(ABC):

    @abstractmethod
    def prove(self, circuit_id, witness):
        """witness로 증명을 만든다.

        Returns:
            tuple: (proof bytes, 공개 입력 FR 리스트)

        Raises:
            EngineError: 제약 불만족 또는 실행 실패
        """

    @abstractmethod
    def verify(self, circuit_id, proof, public_inputs):
        """증명을 검증한다. 유효하면 True."""


def build_engine(config, hasher=None):
    """config.engine에 따라 엔진을 만든다.

      native  NativeEngine(config, hasher)
      nargo   NargoEngine(config)  (nargo_bin, bb_bin, circuits_dir 사용)
    """
    if config.engine == ENGINE_NARGO:
        from zkwallet.engine.nargo import NargoEngine
        return NargoEngine(config)
    from zkwallet.engine.native import NativeEngine
    return NativeEngine(config, hasher)


def _build_default_engine():
    from zkwallet.engine.native import NativeEngine
    return NativeEngine()


DEFAULT_ENGINE = LazyCell(_build_default_engine)


def default_engine():
    """공유 기본 엔진 (NativeEngine)."""
    return DEFAULT_ENGINE.get()
