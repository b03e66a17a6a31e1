"""
ProofRequestAssembler: 지갑 상태 전이 증명 오케스트레이터
==========================================================

이전/새 WalletState, Merkle 포함 증명, 키, Operations를 받아
wallet_update_state 회로의 witness를 조립하고 엔진을 한 번 호출한다.

  ┌─────────────────────────────────────────────────────┐
  │  Step 0: 키 확인 (KeysNotFound, 해싱 전)             │
  ├─────────────────────────────────────────────────────┤
  │  Step 1: 주문 슬롯 해싱 (OrderCodec)                 │
  │  Step 2: old/new 커밋먼트 (nonce / nonce + 1)        │
  │  Step 3: Merkle 루트 재계산 후 old_merkle_root와 비교 │
  │  Step 4: 널리파이어 = Hash(sk_match, old_commitment) │
  ├─────────────────────────────────────────────────────┤
  │  Step 5: Operations 평탄화 (operation_type 0/1/2)    │
  │  Step 6: 이름 있는 witness 조립                      │
  ├─────────────────────────────────────────────────────┤
  │  Step 7: 엔진 호출 (1회) → 공개 입력 위치 해석        │
  └─────────────────────────────────────────────────────┘

Step 1~4의 오류는 엔진을 호출하기 전에 그대로 전파된다.
잘못된 witness는 절대 엔진에 넘기지 않는다.

사용 예시:
    >>> assembler = ProofRequestAssembler(engine, hasher, config)
    >>> result = assembler.build_and_prove(old_state, new_state, root, index,
    ...                                    siblings, old_nonce, keys, operations)
    >>> result.public_inputs.nullifier
"""

import logging
import time
from dataclasses import dataclass, field

from zkwallet.commitment import CommitmentCodec
from zkwallet.config import DEFAULT_CONFIG
from zkwallet.engine import CIRCUIT_INIT, CIRCUIT_UPDATE, EngineError, default_engine
from zkwallet.errors import ProofGenerationFailed, ShapeMismatch
from zkwallet.field import fr_short, parse_uint, to_field
from zkwallet.merkle import MerkleVerifier
from zkwallet.nullifier import NullifierDeriver
from zkwallet.prover.witness import build_init_witness, build_update_witness, flatten_operations
from zkwallet.public_inputs import WalletInitPublicInputs, WalletUpdatePublicInputs
from zkwallet.state import WalletState
from zkwallet.transition import random_blinder


logger = logging.getLogger(__name__)


@dataclass
class ProofResult:
    """wallet_update_state 증명 결과.

    속성:
        proof: 증명 바이트열
        public_inputs: WalletUpdatePublicInputs (이름 있는 공개 입력)
        raw_public_inputs: 엔진이 돌려준 위치 벡터
        new_state: 새 WalletState
        new_nonce: old_nonce + 1
        operations: 증명에 들어간 Operations
        timing: 단계별 소요 시간 (ms)
    """
    proof: bytes
    public_inputs: WalletUpdatePublicInputs
    raw_public_inputs: list
    new_state: WalletState
    new_nonce: int
    operations: object
    timing: dict = field(default_factory=dict)

    @property
    def proof_hex(self):
        return "0x" + bytes(self.proof).hex()


@dataclass
class InitProofResult:
    proof: bytes
    public_inputs: WalletInitPublicInputs
    raw_public_inputs: list
    state: WalletState
    nonce: int = 0
    timing: dict = field(default_factory=dict)

    @property
    def proof_hex(self):
        return "0x" + bytes(self.proof).hex()


def _ms(start):
    return int((time.time() - start) * 1000)


class ProofRequestAssembler:
    """코덱들과 엔진을 묶는 조립기.

    Args:
        engine: ProvingEngine (None이면 공유 기본 엔진)
        hasher: FieldHasher
        config: WalletConfig
    """

    def __init__(self, engine=None, hasher=None, config=None):
        self.config = config if config is not None else DEFAULT_CONFIG
        self._engine = engine
        self.codec = CommitmentCodec(hasher, self.config)
        self.hasher = self.codec.hasher
        self.merkle = MerkleVerifier(self.hasher, self.config.global_depth)
        self.nullifiers = NullifierDeriver(self.hasher)

    @property
    def engine(self):
        if self._engine is None:
            self._engine = default_engine()
        return self._engine

    def _prove(self, circuit_id, witness, decoder):
        try:
            proof, raw = self.engine.prove(circuit_id, witness)
        except EngineError as exc:
            raise ProofGenerationFailed(str(exc)) from exc
        try:
            decoded = decoder.from_list(raw)
        except ShapeMismatch as exc:
            raise ProofGenerationFailed(str(exc)) from exc
        return proof, list(raw), decoded

    # ─── wallet_update_state ───

    def build_and_prove(self, old_state, new_state, old_merkle_root, old_index,
                        old_siblings, old_nonce, keys, operations):
        """상태 전이 증명을 만든다.

        Returns:
            ProofResult

        Raises:
            KeysNotFound: 키가 하나라도 없을 때 (해싱 전)
            ShapeMismatch: 배열 길이 / 경로 깊이 불일치
            StaleOrInvalidMerkleProof: 재계산 루트 ≠ old_merkle_root
            ProofGenerationFailed: 엔진 실패 또는 엔진 출력이 호스트 계산과 다를 때
        """
        start = time.time()

        # Step 0: 키
        keys = keys.require()

        # Step 1: 주문 해시
        old_state.validate(self.config)
        new_state.validate(self.config)
        old_order_hashes = self.codec.orders.hash_orders(old_state.orders_list)
        new_order_hashes = self.codec.orders.hash_orders(new_state.orders_list)

        # Step 2: 커밋먼트
        old_nonce = parse_uint(old_nonce)
        new_nonce = old_nonce + 1
        old_commitment = self.codec.commit_state(old_state, keys, old_nonce, old_order_hashes)
        new_commitment = self.codec.commit_state(new_state, keys, new_nonce, new_order_hashes)
        logger.debug("old commitment %s, new commitment %s",
                     fr_short(old_commitment), fr_short(new_commitment))

        # Step 3: Merkle 교차 확인
        old_merkle_root = self.merkle.verify(old_merkle_root, old_commitment, old_index, old_siblings)

        # Step 4: 널리파이어
        nullifier = self.nullifiers.derive_nullifier(keys.sk_match, old_commitment)

        # Step 5~6: witness
        flat_ops = flatten_operations(operations)
        witness = build_update_witness(
            old_state, keys, old_nonce, old_order_hashes,
            old_commitment, new_commitment, old_merkle_root,
            old_index, old_siblings, new_state.blinder, flat_ops,
        )
        witness_ms = _ms(start)

        # Step 7: 엔진
        t0 = time.time()
        proof, raw, public_inputs = self._prove(CIRCUIT_UPDATE, witness, WalletUpdatePublicInputs)
        proof_ms = _ms(t0)

        expected = {
            "old_wallet_commitment": old_commitment,
            "new_wallet_commitment": new_commitment,
            "old_merkle_root": old_merkle_root,
            "nullifier": nullifier,
        }
        for name, value in expected.items():
            if getattr(public_inputs, name) != value:
                raise ProofGenerationFailed(f"엔진 공개 입력 {name}이(가) 호스트 계산과 다릅니다")

        timing = {"witness": witness_ms, "proof": proof_ms, "total": _ms(start)}
        logger.info("wallet_update_state 증명 완료: op=%s nullifier=%s (%dms)",
                    flat_ops["operation_type"], fr_short(nullifier), timing["total"])

        return ProofResult(
            proof=proof,
            public_inputs=public_inputs,
            raw_public_inputs=raw,
            new_state=new_state,
            new_nonce=new_nonce,
            operations=operations,
            timing=timing,
        )

    # ─── wallet_init_state ───

    def build_init_proof(self, keys, blinder=None):
        """빈 지갑(nonce 0)의 초기 커밋먼트 증명."""
        start = time.time()
        keys = keys.require()
        if blinder is None:
            blinder = random_blinder()
        blinder = parse_uint(blinder)

        commitment = self.codec.initial_commitment(keys, blinder)
        witness = build_init_witness(commitment, keys, blinder)

        proof, raw, public_inputs = self._prove(CIRCUIT_INIT, witness, WalletInitPublicInputs)
        if public_inputs.initial_commitment != to_field(commitment):
            raise ProofGenerationFailed("엔진 공개 입력 initial_commitment이(가) 호스트 계산과 다릅니다")

        timing = {"total": _ms(start)}
        logger.info("wallet_init_state 증명 완료: commitment=%s", fr_short(commitment))
        return InitProofResult(
            proof=proof,
            public_inputs=public_inputs,
            raw_public_inputs=raw,
            state=WalletState.empty(self.config, blinder=blinder),
            nonce=0,
            timing=timing,
        )


def build_and_prove(old_state, new_state, old_merkle_root, old_index, old_siblings,
                    old_nonce, keys, operations, engine=None, hasher=None, config=None):
    """ProofRequestAssembler.build_and_prove의 함수형 진입점."""
    assembler = ProofRequestAssembler(engine, hasher, config)
    return assembler.build_and_prove(old_state, new_state, old_merkle_root, old_index,
                                     old_siblings, old_nonce, keys, operations)


def build_init_proof(keys, blinder=None, engine=None, hasher=None, config=None):
    assembler = ProofRequestAssembler(engine, hasher, config)
    return assembler.build_init_proof(keys, blinder)
