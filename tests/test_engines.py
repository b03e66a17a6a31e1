"""
Proving engine tests: NativeEngine relations, NargoEngine CLI driving
"""
import os
import subprocess

import pytest

from zkwallet.config import WalletConfig
from zkwallet.engine import (
    CIRCUIT_INIT,
    CIRCUIT_UPDATE,
    DEFAULT_ENGINE,
    EngineError,
    build_engine,
    default_engine,
)
from zkwallet.engine.nargo import (
    NargoEngine,
    format_field,
    read_public_inputs,
    render_prover_toml,
    write_public_inputs,
)
from zkwallet.engine.native import NativeEngine, transcript_digest
from zkwallet.errors import ProofGenerationFailed, TransitionRejected
from zkwallet.field import CURVE_ORDER, FR
from zkwallet.prover import ProofRequestAssembler
from zkwallet.prover.witness import build_init_witness, build_update_witness, flatten_operations
from zkwallet.state import DEPOSIT, WITHDRAW, Operations, TransferOp
from zkwallet.verifier import verify_transition


def update_witness(wallet, builder, action):
    """실제 전이에서 만든 유효한 witness."""
    codec = wallet.codec
    new_state, ops = builder.apply(wallet.state, action, wallet.nonce)
    old_hashes = codec.orders.hash_orders(wallet.state.orders_list)
    new_commitment = codec.commit_state(new_state, wallet.keys, wallet.nonce + 1)
    return build_update_witness(
        wallet.state, wallet.keys, wallet.nonce, old_hashes,
        wallet.commitment, new_commitment, wallet.root,
        wallet.index, wallet.path.siblings, new_state.blinder,
        flatten_operations(ops),
    )


WITHDRAW_10 = Operations(transfer=TransferOp(direction=WITHDRAW, token_index=0, amount=10))


# =====================================================================
# NativeEngine
# =====================================================================

class TestNativeEngine:
    """호스트에서 회로 관계식을 재실행한다."""

    def test_valid_witness(self, engine, wallet, builder):
        witness = update_witness(wallet, builder, WITHDRAW_10)
        proof, outputs = engine.prove(CIRCUIT_UPDATE, witness)
        assert len(outputs) == 8
        assert outputs[0] == wallet.commitment
        assert outputs[2] == wallet.root
        assert outputs[3] == FR(WITHDRAW)
        assert outputs[5] == FR(10)
        assert engine.verify(CIRCUIT_UPDATE, proof, outputs)

    @pytest.mark.parametrize("field,value,constraint", [
        ("old_wallet_commitment", "5", "old_wallet_commitment"),
        ("new_wallet_commitment", "5", "new_wallet_commitment"),
        ("old_merkle_root", "5", "old_merkle_root"),
        ("transfer_amount", "11", "new_wallet_commitment"),
        ("transfer_index", "1", "transfer_index"),
        ("operation_type", "3", "operation_type"),
    ])
    def test_tampered_witness(self, engine, wallet, builder, field, value, constraint):
        witness = update_witness(wallet, builder, WITHDRAW_10)
        witness[field] = value
        with pytest.raises(EngineError) as exc_info:
            engine.prove(CIRCUIT_UPDATE, witness)
        assert constraint in str(exc_info.value)

    def test_overdraw_rejected(self, engine, wallet, builder):
        witness = update_witness(wallet, builder, WITHDRAW_10)
        witness["transfer_amount"] = "5000"
        with pytest.raises(EngineError):
            engine.prove(CIRCUIT_UPDATE, witness)

    def test_missing_field(self, engine, wallet, builder):
        witness = update_witness(wallet, builder, WITHDRAW_10)
        del witness["new_blinder"]
        with pytest.raises(EngineError) as exc_info:
            engine.prove(CIRCUIT_UPDATE, witness)
        assert "new_blinder" in str(exc_info.value)

    def test_short_hash_path(self, engine, wallet, builder):
        witness = update_witness(wallet, builder, WITHDRAW_10)
        witness["old_hash_path"] = witness["old_hash_path"][:-1]
        with pytest.raises(EngineError):
            engine.prove(CIRCUIT_UPDATE, witness)

    def test_unknown_circuit(self, engine):
        with pytest.raises(EngineError):
            engine.prove("wallet_unknown", {})

    def test_init(self, engine, keys, codec):
        commitment = codec.initial_commitment(keys, 9)
        proof, outputs = engine.prove(CIRCUIT_INIT, build_init_witness(commitment, keys, 9))
        assert outputs == [commitment]
        assert engine.verify(CIRCUIT_INIT, proof, outputs)

    def test_init_wrong_commitment(self, engine, keys, codec):
        commitment = codec.initial_commitment(keys, 9)
        with pytest.raises(EngineError):
            engine.prove(CIRCUIT_INIT, build_init_witness(commitment, keys, 10))

    def test_verify_rejects_changed_inputs(self, engine, wallet, builder):
        proof, outputs = engine.prove(CIRCUIT_UPDATE, update_witness(wallet, builder, WITHDRAW_10))
        tampered = list(outputs)
        tampered[7] = FR(1)
        assert not engine.verify(CIRCUIT_UPDATE, proof, tampered)
        assert not engine.verify(CIRCUIT_INIT, proof, outputs)
        assert not engine.verify(CIRCUIT_UPDATE, proof, ["-1"] * 8)

    def test_transcript_digest_binds_circuit(self):
        assert transcript_digest("a", [FR(1)]) != transcript_digest("b", [FR(1)])
        assert len(transcript_digest("a", [])) == 32

    def test_default_engine_is_shared(self):
        assert default_engine() is default_engine()
        assert DEFAULT_ENGINE.initialized
        assert isinstance(default_engine(), NativeEngine)


# =====================================================================
# NargoEngine
# =====================================================================

class FakeCli:
    """nargo / bb 대신 동작하는 subprocess.run 대역."""

    def __init__(self, outputs, fail_on=None, stderr="error: constraint failed"):
        self.outputs = outputs
        self.fail_on = fail_on
        self.stderr = stderr
        self.calls = []

    def __call__(self, cmd, cwd=None, check=False, capture_output=False, text=False):
        self.calls.append((list(cmd), cwd))
        if self.fail_on is not None and cmd[1] == self.fail_on:
            raise subprocess.CalledProcessError(1, cmd, output="", stderr=self.stderr)
        if cmd[1] == "prove":
            out_dir = cmd[cmd.index("-o") + 1]
            os.makedirs(out_dir, exist_ok=True)
            with open(os.path.join(out_dir, "proof"), "wb") as f:
                f.write(b"\x01\x02\x03")
            with open(os.path.join(out_dir, "public_inputs"), "wb") as f:
                f.write(write_public_inputs(self.outputs))
        if cmd[1] == "write_vk":
            out_dir = cmd[cmd.index("-o") + 1]
            with open(os.path.join(out_dir, "vk"), "wb") as f:
                f.write(b"vk")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")


@pytest.fixture
def nargo_config(tmp_path):
    (tmp_path / CIRCUIT_UPDATE).mkdir()
    return WalletConfig(global_depth=4, nargo_bin="nargo", bb_bin="bb", circuits_dir=str(tmp_path))


class TestProverToml:
    def test_format_field(self):
        assert format_field(0) == '"0"'
        assert format_field(255) == '"0x' + "0" * 62 + 'ff"'
        assert format_field("16") == '"0x' + "0" * 62 + '10"'

    def test_nested_tables_after_scalars(self):
        text = render_prover_toml({
            "a": "1",
            "old_wallet": {"fees": "0", "keys": {"nonce": "2"}, "orders_list": ["0", "3"]},
            "path": ["0", "1"],
        })
        lines = text.splitlines()
        assert lines[0].startswith("a = ")
        assert lines[1].startswith("path = [")
        assert "[old_wallet]" in lines
        assert "[old_wallet.keys]" in lines
        assert lines.index("[old_wallet]") < lines.index("[old_wallet.keys]")
        # 테이블 키는 하위 테이블 헤더보다 먼저
        assert lines.index('fees = "0"') < lines.index("[old_wallet.keys]")
        assert lines.index("orders_list = [\"0\", \"0x" + "0" * 63 + "3\"]") < lines.index("[old_wallet.keys]")

    def test_read_public_inputs(self):
        values = [FR(1), FR(CURVE_ORDER - 1)]
        assert read_public_inputs(write_public_inputs(values)) == values
        with pytest.raises(EngineError):
            read_public_inputs(b"\x00" * 31)


class TestNargoEngine:
    def test_prove(self, monkeypatch, nargo_config, tmp_path):
        outputs = [FR(i) for i in range(8)]
        cli = FakeCli(outputs)
        monkeypatch.setattr(subprocess, "run", cli)

        engine = NargoEngine(nargo_config)
        proof, public_inputs = engine.prove(CIRCUIT_UPDATE, {"x": "1", "y": ["2"]})

        assert proof == b"\x01\x02\x03"
        assert public_inputs == outputs
        assert cli.calls[0] == (["nargo", "execute", CIRCUIT_UPDATE], str(tmp_path / CIRCUIT_UPDATE))
        assert cli.calls[1][0][:2] == ["bb", "prove"]
        toml = (tmp_path / CIRCUIT_UPDATE / "Prover.toml").read_text()
        assert 'x = "0x' in toml

    def test_execute_failure_message_preserved(self, monkeypatch, nargo_config):
        monkeypatch.setattr(subprocess, "run", FakeCli([], fail_on="execute",
                                                       stderr="Failed constraint: old_merkle_root"))
        with pytest.raises(EngineError) as exc_info:
            NargoEngine(nargo_config).prove(CIRCUIT_UPDATE, {"x": "1"})
        assert "old_merkle_root" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, subprocess.CalledProcessError)

    def test_missing_binary(self, monkeypatch, nargo_config):
        def missing(cmd, **kwargs):
            raise FileNotFoundError(cmd[0])

        monkeypatch.setattr(subprocess, "run", missing)
        with pytest.raises(EngineError):
            NargoEngine(nargo_config).prove(CIRCUIT_UPDATE, {"x": "1"})

    def test_verify(self, monkeypatch, nargo_config, tmp_path):
        cli = FakeCli([])
        monkeypatch.setattr(subprocess, "run", cli)
        (tmp_path / CIRCUIT_UPDATE / "target").mkdir()

        assert NargoEngine(nargo_config).verify(CIRCUIT_UPDATE, b"\x01", [FR(1), FR(2)])
        commands = [c[0][1] for c in cli.calls]
        assert commands == ["write_vk", "verify"]
        written = (tmp_path / CIRCUIT_UPDATE / "target" / "verify" / "public_inputs").read_bytes()
        assert read_public_inputs(written) == [FR(1), FR(2)]

    def test_verify_rejects(self, monkeypatch, nargo_config, tmp_path):
        (tmp_path / CIRCUIT_UPDATE / "target").mkdir()
        (tmp_path / CIRCUIT_UPDATE / "target" / "vk").write_bytes(b"vk")
        monkeypatch.setattr(subprocess, "run", FakeCli([], fail_on="verify"))
        assert not NargoEngine(nargo_config).verify(CIRCUIT_UPDATE, b"\x01", [FR(1)])

    def test_prove_deposit_flat_fields(self, monkeypatch, nargo_config, tmp_path):
        cli = FakeCli([FR(0)] * 8)
        monkeypatch.setattr(subprocess, "run", cli)
        flat = flatten_operations(Operations(
            transfer=TransferOp(direction=DEPOSIT, token_index=2, amount=5)))
        NargoEngine(nargo_config).prove(CIRCUIT_UPDATE, flat)
        toml = (tmp_path / CIRCUIT_UPDATE / "Prover.toml").read_text()
        assert "transfer_index = " in toml
        assert 'transfer_direction = "0"' in toml


class TestNargoFileErrors:
    """파일 입출력 실패도 EngineError로 올라온다."""

    def test_missing_circuits_dir(self, monkeypatch, tmp_path):
        cli = FakeCli([])
        monkeypatch.setattr(subprocess, "run", cli)
        engine = NargoEngine(WalletConfig(global_depth=4, circuits_dir=str(tmp_path / "missing")))
        with pytest.raises(EngineError) as exc_info:
            engine.prove(CIRCUIT_UPDATE, {"x": "1"})
        assert isinstance(exc_info.value.__cause__, OSError)
        assert cli.calls == []

    def test_assembler_reports_proof_failure(self, monkeypatch, tmp_path, wallet, builder, hasher):
        monkeypatch.setattr(subprocess, "run", FakeCli([]))
        config = WalletConfig(global_depth=4, circuits_dir=str(tmp_path / "missing"))
        assembler = ProofRequestAssembler(NargoEngine(config), hasher, config)
        new_state, ops = builder.apply(wallet.state, WITHDRAW_10, wallet.nonce)
        with pytest.raises(ProofGenerationFailed):
            assembler.build_and_prove(
                wallet.state, new_state, wallet.root, wallet.index, wallet.path.siblings,
                wallet.nonce, wallet.keys, ops,
            )

    def test_verify_unwritable_target(self, monkeypatch, tmp_path):
        monkeypatch.setattr(subprocess, "run", FakeCli([]))
        not_a_dir = tmp_path / "circuits"
        not_a_dir.write_text("")
        engine = NargoEngine(WalletConfig(global_depth=4, circuits_dir=str(not_a_dir)))
        with pytest.raises(EngineError):
            engine.verify(CIRCUIT_UPDATE, b"\x01", [FR(1)])

    def test_write_vk_failure(self, monkeypatch, nargo_config):
        monkeypatch.setattr(subprocess, "run", FakeCli([], fail_on="write_vk"))
        with pytest.raises(EngineError):
            NargoEngine(nargo_config).verify(CIRCUIT_UPDATE, b"\x01", [FR(1)])

    def test_write_vk_failure_rejects_transition(self, monkeypatch, nargo_config):
        monkeypatch.setattr(subprocess, "run", FakeCli([], fail_on="write_vk"))
        with pytest.raises(TransitionRejected) as exc_info:
            verify_transition(NargoEngine(nargo_config), b"\x01", [FR(0)] * 8,
                              Operations(), [FR(0)], [])
        assert isinstance(exc_info.value.__cause__, EngineError)


# =====================================================================
# 엔진 선택
# =====================================================================

class TestEngineSelection:
    def test_default_is_native(self, config, hasher):
        engine = build_engine(config, hasher)
        assert isinstance(engine, NativeEngine)
        assert engine.hasher is hasher

    def test_nargo(self, nargo_config):
        engine = build_engine(WalletConfig(engine="nargo", circuits_dir=nargo_config.circuits_dir))
        assert isinstance(engine, NargoEngine)
        assert engine.config.circuits_dir == nargo_config.circuits_dir

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("ZKWALLET_ENGINE", "Nargo")
        monkeypatch.setenv("ZKWALLET_BB", "/opt/bb")
        config = WalletConfig.from_env()
        assert config.engine == "nargo"
        assert isinstance(build_engine(config), NargoEngine)

    def test_from_env_default(self, monkeypatch):
        monkeypatch.delenv("ZKWALLET_ENGINE", raising=False)
        assert WalletConfig.from_env().engine == "native"

    def test_unknown_engine(self):
        with pytest.raises(ValueError):
            WalletConfig(engine="groth16")
