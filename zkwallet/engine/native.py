"""
NativeEngine: 회로 관계식의 호스트 재실행
=========================================

wallet_init_state / wallet_update_state 회로가 검사하는 관계를
같은 코덱(CommitmentCodec, MerkleVerifier, NullifierDeriver)으로
파이썬에서 다시 계산한다. 하나라도 맞지 않으면 EngineError.

**wallet_update_state 관계**:
  1. old_wallet_commitment == Commit(old_wallet, nonce)
  2. old_merkle_root == MerkleRoot(old_wallet_commitment, old_index, old_hash_path)
  3. nullifier = Hash(sk_match, old_wallet_commitment)
  4. operation_type ∈ {0, 1, 2}에 따라 입출금 / 주문 효과 적용
  5. new_wallet_commitment == Commit(new_wallet, nonce + 1, new_blinder)

**"증명"**:
  SHA-256 트랜스크립트 다이제스트 = H(label ‖ circuit_id ‖ 공개 입력들).
  영지식성도 건전성(soundness)도 없다. 개발과 테스트 전용이며
  운영 환경에서는 NargoEngine을 쓴다.
"""

import hashlib
import hmac
import logging

from zkwallet.commitment import CommitmentCodec
from zkwallet.config import DEFAULT_CONFIG
from zkwallet.engine import CIRCUIT_INIT, CIRCUIT_UPDATE, EngineError, ProvingEngine
from zkwallet.errors import WalletError
from zkwallet.field import ZERO, fr_short, parse_uint, to_field, to_fields
from zkwallet.merkle import MerkleVerifier
from zkwallet.nullifier import NullifierDeriver
from zkwallet.state import (
    DEPOSIT,
    OP_BOTH,
    OP_ORDER,
    OP_TRANSFER,
    ORDER_CANCEL,
    ORDER_CREATE,
    WITHDRAW,
    Keys,
    Order,
)


logger = logging.getLogger(__name__)


class ProofTranscript:
    """공개 입력을 묶는 SHA-256 트랜스크립트."""

    def __init__(self, label=b"zkwallet-native"):
        self.state = bytearray()
        self.state.extend(label)

    def append_bytes(self, label, data):
        self.state.extend(label)
        self.state.extend(data)

    def append_scalar(self, label, scalar):
        self.state.extend(label)
        # 32바이트 빅엔디안
        self.state.extend(int(scalar).to_bytes(32, "big"))

    def digest(self):
        return hashlib.sha256(bytes(self.state)).digest()


def transcript_digest(circuit_id, public_inputs):
    t = ProofTranscript()
    t.append_bytes(b"circuit", circuit_id.encode())
    for i, value in enumerate(public_inputs):
        t.append_scalar(b"pi%d" % i, to_field(value))
    return t.digest()


def _require(condition, what):
    if not condition:
        raise EngineError(f"Cannot satisfy constraint: {what}")


class NativeEngine(ProvingEngine):
    """회로 관계식을 호스트에서 검사하는 개발용 엔진.

    Args:
        config: WalletConfig (배열 길이, Merkle 깊이)
        hasher: FieldHasher
    """

    def __init__(self, config=None, hasher=None):
        self.config = config if config is not None else DEFAULT_CONFIG
        self.codec = CommitmentCodec(hasher, self.config)
        self.hasher = self.codec.hasher
        self.merkle = MerkleVerifier(self.hasher, self.config.global_depth)
        self.nullifiers = NullifierDeriver(self.hasher)

    # ─── ProvingEngine ───

    def prove(self, circuit_id, witness):
        try:
            if circuit_id == CIRCUIT_INIT:
                public_inputs = self._run_init(witness)
            elif circuit_id == CIRCUIT_UPDATE:
                public_inputs = self._run_update(witness)
            else:
                raise EngineError(f"알 수 없는 회로: {circuit_id}")
        except KeyError as exc:
            raise EngineError(f"witness에 필드가 없습니다: {exc.args[0]}") from exc
        except WalletError as exc:
            raise EngineError(str(exc)) from exc

        proof = transcript_digest(circuit_id, public_inputs)
        logger.debug("native proof: circuit=%s pi[0]=%s", circuit_id, fr_short(public_inputs[0]))
        return proof, public_inputs

    def verify(self, circuit_id, proof, public_inputs):
        try:
            expected = transcript_digest(circuit_id, public_inputs)
        except WalletError:
            return False
        return hmac.compare_digest(bytes(proof), expected)

    # ─── wallet_init_state ───

    def _run_init(self, w):
        keys = Keys(pk_root=w["pk_root"], pk_match=w["pk_match"])
        commitment = self.codec.initial_commitment(keys, w["blinder"])
        _require(commitment == to_field(w["initial_commitment"]), "initial_commitment")
        return [commitment]

    # ─── wallet_update_state ───

    def _run_update(self, w):
        old = w["old_wallet"]
        keys = old["keys"]
        available = [parse_uint(v) for v in old["available_balances"]]
        reserved = [parse_uint(v) for v in old["reserved_balances"]]
        order_hashes = to_fields(old["orders_list"])
        nonce = parse_uint(keys["nonce"])

        old_commitment = self.codec.compute_commitment(
            available, reserved, order_hashes, old["fees"],
            keys["pk_root"], keys["pk_match"], nonce, old["blinder"],
        )
        _require(old_commitment == to_field(w["old_wallet_commitment"]), "old_wallet_commitment")

        root = self.merkle.recompute_root(old_commitment, w["old_index"], w["old_hash_path"])
        _require(root == to_field(w["old_merkle_root"]), "old_merkle_root")

        nullifier = self.nullifiers.derive_nullifier(w["sk_match"], old_commitment)

        operation_type = parse_uint(w["operation_type"])
        _require(operation_type in (OP_TRANSFER, OP_ORDER, OP_BOTH), "operation_type")
        if operation_type in (OP_TRANSFER, OP_BOTH):
            self._apply_transfer(w, available)
        if operation_type in (OP_ORDER, OP_BOTH):
            self._apply_order(w, available, reserved, order_hashes)

        new_commitment = self.codec.compute_commitment(
            available, reserved, order_hashes, old["fees"],
            keys["pk_root"], keys["pk_match"], nonce + 1, w["new_blinder"],
        )
        _require(new_commitment == to_field(w["new_wallet_commitment"]), "new_wallet_commitment")

        return [
            old_commitment,
            new_commitment,
            root,
            to_field(w["transfer_direction"]),
            to_field(w["transfer_mint"]),
            to_field(w["transfer_amount"]),
            to_field(operation_type),
            nullifier,
        ]

    def _apply_transfer(self, w, available):
        direction = parse_uint(w["transfer_direction"])
        mint = parse_uint(w["transfer_mint"])
        amount = parse_uint(w["transfer_amount"])
        _require(direction in (DEPOSIT, WITHDRAW), "transfer_direction")
        _require(mint < len(available), "transfer_mint range")
        _require(parse_uint(w["transfer_index"]) == mint, "transfer_index == transfer_mint")

        if direction == DEPOSIT:
            available[mint] += amount
        else:
            _require(available[mint] >= amount, "withdraw amount <= available")
            available[mint] -= amount

    def _apply_order(self, w, available, reserved, order_hashes):
        index = parse_uint(w["order_index"])
        _require(index < len(order_hashes), "order_index range")
        order = Order(
            price=w["order_price"],
            qty=w["order_quantity"],
            side=w["order_direction"],
            token_in=w["order_token_in"],
            token_out=w["order_token_out"],
        )
        _require(order.token_out < len(available), "order_token_out range")
        order_hash = self.codec.orders.hash_order(order)
        token = order.token_out
        amount = order.committed_amount

        operation = parse_uint(w["order_operation_type"])
        if operation == ORDER_CREATE:
            _require(order_hashes[index] == ZERO, "order slot empty")
            _require(available[token] >= amount, "order amount <= available")
            available[token] -= amount
            reserved[token] += amount
            order_hashes[index] = order_hash
        elif operation == ORDER_CANCEL:
            _require(order_hashes[index] == order_hash, "cancelled order matches slot")
            _require(reserved[token] >= amount, "order amount <= reserved")
            reserved[token] -= amount
            available[token] += amount
            order_hashes[index] = ZERO
        else:
            raise EngineError("Cannot satisfy constraint: order_operation_type")
