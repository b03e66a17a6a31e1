"""
지갑 Flask Blueprint: 모든 지갑 엔드포인트
==========================================

  POST /wallet/keys        키 유도 + 저장           → {wallet_id, pk_root, pk_match}
  POST /wallet/init        wallet_init_state 증명 + 원장 등록
  POST /wallet/transition  순수 상태 전이 계산 (증명 없음)
  POST /wallet/prove       저장된 지갑에서 wallet_update_state 증명 생성
  POST /wallet/verify      백엔드 재검증 + 원장 반영
  GET  /wallet/<id>        저장된 지갑 상태 + 현재 Merkle 경로 조회

오류 응답: {"error": 클래스명, "message": 메시지}
  400 ShapeMismatch, InvalidFieldEncoding, InvalidAction
  404 KeysNotFound, WalletNotFound
  409 StaleOrInvalidMerkleProof, TransitionRejected
  422 InsufficientBalance, NoAvailableOrderSlot, OrderSlotEmpty
  502 ProofGenerationFailed
"""

import logging
import threading

from flask import Blueprint, jsonify, request
from tinydb import Query

from zkwallet.config import DEFAULT_CONFIG
from zkwallet.engine import build_engine, default_engine
from zkwallet.errors import (
    InsufficientBalance,
    InvalidAction,
    InvalidFieldEncoding,
    KeysNotFound,
    NoAvailableOrderSlot,
    OrderSlotEmpty,
    ProofGenerationFailed,
    ShapeMismatch,
    StaleOrInvalidMerkleProof,
    TransitionRejected,
    WalletError,
)
from zkwallet.field import field_str, fr_short, parse_uint
from zkwallet.hasher import default_hasher
from zkwallet.keystore import KeyStore, derive_keys
from zkwallet.prover import ProofRequestAssembler
from zkwallet.public_inputs import WalletUpdatePublicInputs
from zkwallet.transition import TransitionBuilder
from zkwallet.verifier import WalletLedger

from wallet_serializers import (
    deserialize_operations,
    deserialize_proof,
    deserialize_state,
    serialize_init_result,
    serialize_keys_public,
    serialize_operations,
    serialize_path,
    serialize_proof_result,
    serialize_state,
)

logger = logging.getLogger(__name__)

wallet_bp = Blueprint('wallet', __name__, url_prefix='/wallet')

DATA = Query()

# DB와 엔진은 app.py에서 주입
DB = None
CONFIG = DEFAULT_CONFIG
HASHER = None
ENGINE = None
KEYSTORE = None
LEDGER = None

LEDGER_LOCK = threading.Lock()


class WalletNotFound(WalletError):
    """초기화되지 않은 wallet_id."""


STATUS_CODES = [
    ((ShapeMismatch, InvalidFieldEncoding, InvalidAction), 400),
    ((KeysNotFound, WalletNotFound), 404),
    ((StaleOrInvalidMerkleProof, TransitionRejected), 409),
    ((InsufficientBalance, NoAvailableOrderSlot, OrderSlotEmpty), 422),
    ((ProofGenerationFailed,), 502),
]


def init_wallet_bp(db, engine=None, config=None, hasher=None):
    """app.py에서 DB, 엔진, 설정을 주입받는다.

    engine을 주지 않으면 config.engine(native / nargo)에 맞는 엔진을 만든다.
    """
    global DB, CONFIG, HASHER, ENGINE, KEYSTORE, LEDGER
    DB = db
    CONFIG = config if config is not None else DEFAULT_CONFIG
    HASHER = hasher if hasher is not None else default_hasher()
    if engine is None:
        engine = default_engine() if config is None else build_engine(CONFIG, HASHER)
    ENGINE = engine
    KEYSTORE = KeyStore(db)

    LEDGER = WalletLedger(ENGINE, HASHER, CONFIG.global_depth)
    LEDGER.restore(db_get("ledger.leaves") or [], db_get("ledger.nullifiers") or [])


# ─── DB 헬퍼 ───

def db_get(key):
    """DB에서 키로 데이터를 조회한다."""
    result = DB.search(DATA.type == key)
    if not result:
        return None
    return result[0].get("data")


def db_set(key, data):
    """DB에 키로 데이터를 저장한다."""
    DB.upsert({"type": key, "data": data}, DATA.type == key)


def db_remove(key):
    """DB에서 키를 삭제한다."""
    DB.remove(DATA.type == key)


def _persist_ledger():
    tree = LEDGER.tree
    db_set("ledger.leaves", [field_str(tree.leaf(i)) for i in range(tree.size)])
    db_set("ledger.nullifiers", sorted(str(n) for n in LEDGER.spent_nullifiers))


def _load_wallet(wallet_id):
    record = db_get(f"wallet.{wallet_id}")
    if record is None:
        raise WalletNotFound(f"지갑 {wallet_id}이(가) 초기화되지 않았습니다")
    return record


# ─── 요청 헬퍼 ───

def _body():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise InvalidAction("요청 본문은 JSON 객체여야 합니다")
    return body


def _required(body, name):
    if body.get(name) is None:
        raise InvalidAction(f"{name}이(가) 필요합니다")
    return body[name]


def _assembler():
    return ProofRequestAssembler(ENGINE, HASHER, CONFIG)


# ─── 오류 처리 ───

@wallet_bp.errorhandler(WalletError)
def handle_wallet_error(exc):
    status = 500
    for classes, code in STATUS_CODES:
        if isinstance(exc, classes):
            status = code
            break
    logger.info("%s %s → %d %s", request.method, request.path, status, type(exc).__name__)
    return jsonify({"error": type(exc).__name__, "message": str(exc)}), status


# ──────────────────────────────────────────────────────────────
# 키 / 초기화
# ──────────────────────────────────────────────────────────────

@wallet_bp.route("/keys", methods=["POST"])
def create_keys():
    """user_secret에서 매칭 키를 유도하고 저장한다."""
    body = _body()
    wallet_id = _required(body, "wallet_id")
    keys = derive_keys(_required(body, "user_secret"), _required(body, "pk_root"), HASHER)
    KEYSTORE.save(wallet_id, keys)

    out = {"wallet_id": wallet_id}
    out.update(serialize_keys_public(keys))
    return jsonify(out), 201


@wallet_bp.route("/init", methods=["POST"])
def init_wallet():
    """빈 지갑의 초기 커밋먼트 증명을 만들고 원장에 등록한다."""
    body = _body()
    wallet_id = _required(body, "wallet_id")
    keys = KEYSTORE.load(wallet_id)
    blinder = body.get("blinder")

    with LEDGER_LOCK:
        if db_get(f"wallet.{wallet_id}") is not None:
            raise TransitionRejected(f"지갑 {wallet_id}은(는) 이미 초기화되었습니다")

        result = _assembler().build_init_proof(keys, blinder)
        index = LEDGER.register(result.proof, result.public_inputs)
        _persist_ledger()
        db_set(f"wallet.{wallet_id}", {
            "state": serialize_state(result.state),
            "nonce": "0",
            "index": index,
        })
        root = LEDGER.root

    out = serialize_init_result(result)
    out.update({"index": index, "merkle_root": field_str(root)})
    return jsonify(out), 201


@wallet_bp.route("/<wallet_id>", methods=["GET"])
def wallet_page(wallet_id):
    """저장된 지갑 상태."""
    record = _load_wallet(wallet_id)
    out = dict(record)
    with LEDGER_LOCK:
        out["merkle_root"] = field_str(LEDGER.root)
        out["merkle_path"] = serialize_path(LEDGER.tree.path(record["index"]))
    out["pending"] = db_get(f"wallet.{wallet_id}.pending") is not None
    return jsonify(out)


# ──────────────────────────────────────────────────────────────
# 상태 전이 / 증명
# ──────────────────────────────────────────────────────────────

@wallet_bp.route("/transition", methods=["POST"])
def transition():
    """{state, action, nonce} → {new_state, operations, new_nonce}"""
    body = _body()
    try:
        old_state = deserialize_state(_required(body, "state"))
    except KeyError as exc:
        raise InvalidAction(f"state에 {exc.args[0]}가 없습니다") from exc
    action = deserialize_operations(_required(body, "action"))
    nonce = parse_uint(body.get("nonce", 0))

    builder = TransitionBuilder(CONFIG)
    new_state, operations = builder.apply(old_state, action, nonce)
    return jsonify({
        "new_state": serialize_state(new_state),
        "operations": serialize_operations(operations),
        "new_nonce": str(builder.next_nonce(nonce)),
    })


@wallet_bp.route("/prove", methods=["POST"])
def prove():
    """저장된 지갑 + action으로 wallet_update_state 증명을 만든다.

    원장은 바꾸지 않는다. 결과는 pending으로 저장되고 /verify가 반영한다.
    """
    body = _body()
    wallet_id = _required(body, "wallet_id")
    action = deserialize_operations(_required(body, "action"))
    keys = KEYSTORE.load(wallet_id)
    record = _load_wallet(wallet_id)

    old_state = deserialize_state(record["state"])
    old_nonce = parse_uint(record["nonce"])
    new_state, operations = TransitionBuilder(CONFIG).apply(old_state, action, old_nonce)

    with LEDGER_LOCK:
        path = LEDGER.tree.path(record["index"])
        root = LEDGER.root

    result = _assembler().build_and_prove(
        old_state, new_state, root, path.index, path.siblings,
        old_nonce, keys, operations,
    )
    db_set(f"wallet.{wallet_id}.pending", {
        "state": serialize_state(result.new_state),
        "nonce": str(result.new_nonce),
        "new_wallet_commitment": field_str(result.public_inputs.new_wallet_commitment),
    })
    return jsonify(serialize_proof_result(result))


@wallet_bp.route("/verify", methods=["POST"])
def verify():
    """증명을 재검증하고 원장에 반영한다."""
    body = _body()
    wallet_id = _required(body, "wallet_id")
    proof = deserialize_proof(_required(body, "proof"))
    named = _required(body, "public_inputs")
    operations = deserialize_operations(body.get("operations") or {})

    if isinstance(named, dict):
        try:
            values = [named[name] for name in WalletUpdatePublicInputs.field_names()]
        except KeyError as exc:
            raise InvalidAction(f"public_inputs에 {exc.args[0]}가 없습니다") from exc
    else:
        values = named
    public_inputs = WalletUpdatePublicInputs.from_list(values)

    with LEDGER_LOCK:
        # 원장은 저장된 pending 결과와 같은 증명만 반영한다
        pending_key = f"wallet.{wallet_id}.pending"
        pending = db_get(pending_key)
        if pending is None:
            raise TransitionRejected(f"지갑 {wallet_id}에 검증 대기 중인 증명이 없습니다")
        if pending["new_wallet_commitment"] != field_str(public_inputs.new_wallet_commitment):
            raise TransitionRejected(
                f"지갑 {wallet_id}의 최신 증명이 아닙니다 (/prove를 다시 호출한 뒤의 이전 증명)"
            )

        index = LEDGER.submit(proof, public_inputs, operations)
        _persist_ledger()
        root = LEDGER.root

        db_set(f"wallet.{wallet_id}", {
            "state": pending["state"],
            "nonce": pending["nonce"],
            "index": index,
        })
        db_remove(pending_key)

    logger.info("전이 반영: wallet=%s index=%d nullifier=%s",
                wallet_id, index, fr_short(public_inputs.nullifier))
    return jsonify({
        "accepted": True,
        "index": index,
        "merkle_root": field_str(root),
        "wallet_updated": True,
        "operations": serialize_operations(operations),
    })
