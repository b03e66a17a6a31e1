"""
백엔드 측 재검증 (Downstream Verifier)
======================================

증명을 받은 백엔드는 클라이언트가 계산한 값을 믿지 않고
공개 입력만으로 다시 확인한다.

  1. old_merkle_root가 백엔드가 알고 있는 루트인가     (루트 신선도)
  2. nullifier가 아직 소비되지 않았는가               (이중 지출)
  3. Operations와 공개 입력의 transfer 필드가 일치하는가
  4. 엔진 verify가 통과하는가

하나라도 실패하면 TransitionRejected. 엔진 verify 자체가 실패해도
(EngineError, 예: bb write_vk 실패) 증명을 받아들이지 않고 TransitionRejected로 바꾼다.

WalletLedger는 위 검사를 통과한 전이를 반영하는 최소 백엔드다:
널리파이어를 소비 처리하고 새 커밋먼트를 Merkle 트리에 추가한다.
"""

import logging

from zkwallet.engine import CIRCUIT_INIT, CIRCUIT_UPDATE, EngineError
from zkwallet.errors import TransitionRejected
from zkwallet.field import fr_short, to_field
from zkwallet.merkle import MerkleTree
from zkwallet.prover.witness import flatten_operations
from zkwallet.public_inputs import WalletInitPublicInputs, WalletUpdatePublicInputs


logger = logging.getLogger(__name__)


def _engine_verify(engine, circuit_id, proof, values):
    try:
        return engine.verify(circuit_id, proof, values)
    except EngineError as exc:
        raise TransitionRejected(f"증명을 검증할 수 없습니다: {exc}") from exc


def verify_transition(engine, proof, public_inputs, operations, known_roots, spent_nullifiers):
    """상태 전이 증명을 백엔드 관점에서 재검증한다.

    Args:
        engine: ProvingEngine
        proof: 증명 바이트열
        public_inputs: WalletUpdatePublicInputs 또는 위치 벡터
        operations: 클라이언트가 함께 보낸 Operations
        known_roots: 유효한 과거/현재 Merkle 루트들
        spent_nullifiers: 이미 소비된 널리파이어들

    Returns:
        WalletUpdatePublicInputs

    Raises:
        TransitionRejected
    """
    if not isinstance(public_inputs, WalletUpdatePublicInputs):
        public_inputs = WalletUpdatePublicInputs.from_list(public_inputs)

    roots = {int(to_field(r)) for r in known_roots}
    if int(public_inputs.old_merkle_root) not in roots:
        raise TransitionRejected(
            f"알 수 없는 Merkle 루트: {fr_short(public_inputs.old_merkle_root)}"
        )

    spent = {int(to_field(n)) for n in spent_nullifiers}
    if int(public_inputs.nullifier) in spent:
        raise TransitionRejected(
            f"이미 소비된 널리파이어: {fr_short(public_inputs.nullifier)}"
        )

    flat = flatten_operations(operations)
    for name in ("transfer_direction", "transfer_mint", "transfer_amount", "operation_type"):
        if int(getattr(public_inputs, name)) != int(flat[name]):
            raise TransitionRejected(f"Operations와 공개 입력 {name}이(가) 다릅니다")

    if not _engine_verify(engine, CIRCUIT_UPDATE, proof, public_inputs.to_list()):
        raise TransitionRejected("증명 검증 실패")

    return public_inputs


class WalletLedger:
    """커밋먼트 트리 + 소비된 널리파이어 집합.

    Args:
        engine: ProvingEngine
        hasher: FieldHasher
        depth: Merkle 트리 깊이
    """

    def __init__(self, engine, hasher=None, depth=None):
        self.engine = engine
        if depth is None:
            self.tree = MerkleTree(hasher)
        else:
            self.tree = MerkleTree(hasher, depth)
        self.roots = [int(self.tree.root)]
        self.spent_nullifiers = set()

    @property
    def root(self):
        return self.tree.root

    def restore(self, leaves, spent_nullifiers):
        """저장된 리프와 널리파이어로 상태를 다시 만든다 (재시작 시)."""
        for leaf in leaves:
            self.tree.append(to_field(leaf))
            self.roots.append(int(self.tree.root))
        self.spent_nullifiers.update(int(to_field(n)) for n in spent_nullifiers)

    def register(self, proof, public_inputs):
        """wallet_init_state 증명을 검증하고 초기 커밋먼트를 추가한다."""
        if not isinstance(public_inputs, WalletInitPublicInputs):
            public_inputs = WalletInitPublicInputs.from_list(public_inputs)
        if not _engine_verify(self.engine, CIRCUIT_INIT, proof, public_inputs.to_list()):
            raise TransitionRejected("초기화 증명 검증 실패")
        return self._append(public_inputs.initial_commitment)

    def submit(self, proof, public_inputs, operations):
        """상태 전이를 검증하고 반영한다. 새 리프 인덱스를 반환한다."""
        public_inputs = verify_transition(
            self.engine, proof, public_inputs, operations,
            self.roots, self.spent_nullifiers,
        )
        self.spent_nullifiers.add(int(public_inputs.nullifier))
        return self._append(public_inputs.new_wallet_commitment)

    def _append(self, commitment):
        index = self.tree.append(to_field(commitment))
        self.roots.append(int(self.tree.root))
        logger.info("커밋먼트 추가: index=%d root=%s", index, fr_short(self.tree.root))
        return index
