"""
지갑 프로토콜 설정
==================

고정 길이 배열의 크기와 Merkle 트리 깊이는 회로와의 계약이다.
회로를 다시 컴파일하지 않고 이 값을 바꾸면 모든 증명이 실패한다.

  N_TOKENS            지원 토큰 수 (잔고 배열 길이)
  MAX_PENDING_ORDERS  대기 주문 슬롯 수 (orders_list 길이)
  GLOBAL_DEPTH        지갑 커밋먼트 Merkle 트리 깊이

환경 변수로 덮어쓸 수 있다:
  ZKWALLET_N_TOKENS, ZKWALLET_MAX_PENDING_ORDERS, ZKWALLET_GLOBAL_DEPTH,
  ZKWALLET_NARGO, ZKWALLET_BB, ZKWALLET_CIRCUITS_DIR,
  ZKWALLET_ENGINE ("native" 기본, 또는 "nargo")
"""

import os
from dataclasses import dataclass


N_TOKENS = 10
MAX_PENDING_ORDERS = 4
GLOBAL_DEPTH = 16

NARGO = os.path.expanduser("~/.nargo/bin/nargo")
BB = os.path.expanduser("~/.bb/bb")
CIRCUITS_DIR = "circuits"

ENGINE_NATIVE = "native"
ENGINE_NARGO = "nargo"
ENGINES = (ENGINE_NATIVE, ENGINE_NARGO)


def _env_int(name, default):
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    value = int(raw)
    if value <= 0:
        raise ValueError(f"{name}은 양의 정수여야 합니다: {raw}")
    return value


@dataclass(frozen=True)
class WalletConfig:
    n_tokens: int = N_TOKENS
    max_pending_orders: int = MAX_PENDING_ORDERS
    global_depth: int = GLOBAL_DEPTH
    nargo_bin: str = NARGO
    bb_bin: str = BB
    circuits_dir: str = CIRCUITS_DIR
    engine: str = ENGINE_NATIVE

    def __post_init__(self):
        if self.engine not in ENGINES:
            raise ValueError(f"engine은 {', '.join(ENGINES)} 중 하나여야 합니다: {self.engine}")

    @classmethod
    def from_env(cls):
        """환경 변수에서 설정을 읽는다. 비어 있는 변수는 기본값을 쓴다."""
        return cls(
            n_tokens=_env_int("ZKWALLET_N_TOKENS", N_TOKENS),
            max_pending_orders=_env_int("ZKWALLET_MAX_PENDING_ORDERS", MAX_PENDING_ORDERS),
            global_depth=_env_int("ZKWALLET_GLOBAL_DEPTH", GLOBAL_DEPTH),
            nargo_bin=os.environ.get("ZKWALLET_NARGO") or NARGO,
            bb_bin=os.environ.get("ZKWALLET_BB") or BB,
            circuits_dir=os.environ.get("ZKWALLET_CIRCUITS_DIR") or CIRCUITS_DIR,
            engine=os.environ.get("ZKWALLET_ENGINE", "").strip().lower() or ENGINE_NATIVE,
        )


DEFAULT_CONFIG = WalletConfig()
