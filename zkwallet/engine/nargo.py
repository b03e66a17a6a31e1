"""
NargoEngine: Noir + Barretenberg CLI 엔진
=========================================

  circuits/<circuit_id>/
      Nargo.toml, src/main.nr      (미리 컴파일 가능한 Noir 패키지)
      Prover.toml                  ← witness를 여기에 쓴다
      target/<circuit_id>.json     바이트코드
      target/<circuit_id>.gz       nargo execute가 만든 witness
      target/proof                 bb prove 출력
      target/public_inputs         32바이트 빅엔디안 필드 원소 나열
      target/vk                    bb write_vk 출력

흐름:
  1. Prover.toml 작성 (필드는 "0" 또는 "0x%064x")
  2. nargo execute <circuit_id>
  3. bb prove -b <bytecode> -w <witness> -o target
  4. target/proof, target/public_inputs 읽기

CLI가 실패하면 stderr를 그대로 담은 EngineError를 던진다.
Prover.toml, 검증용 입력 파일 같은 파일 입출력 실패도 EngineError다.
"""

import logging
import os
import subprocess
import time

from zkwallet.config import DEFAULT_CONFIG
from zkwallet.engine import EngineError, ProvingEngine
from zkwallet.field import CURVE_ORDER, parse_uint, to_field


logger = logging.getLogger(__name__)


def format_field(v):
    """Prover.toml용 BN254 필드 원소 표기."""
    v = parse_uint(v) % CURVE_ORDER
    if v == 0:
        return '"0"'
    return f'"0x{v:064x}"'


def render_prover_toml(witness):
    """이름 있는 witness 맵 → Prover.toml 텍스트.

    스칼라와 배열을 먼저 쓰고, 중첩 맵(old_wallet, old_wallet.keys)은
    TOML 테이블로 뒤에 쓴다.
    """
    lines = []
    _render_table(lines, witness, prefix=None)
    return "\n".join(lines) + "\n"


def _render_table(lines, table, prefix):
    nested = []
    for key, value in table.items():
        if isinstance(value, dict):
            nested.append((key, value))
        elif isinstance(value, (list, tuple)):
            lines.append(f"{key} = [{', '.join(format_field(v) for v in value)}]")
        else:
            lines.append(f"{key} = {format_field(value)}")
    for key, value in nested:
        name = key if prefix is None else f"{prefix}.{key}"
        lines.append("")
        lines.append(f"[{name}]")
        _render_table(lines, value, prefix=name)


def read_public_inputs(data):
    """32바이트 빅엔디안 청크 → FR 리스트."""
    if len(data) % 32:
        raise EngineError(f"public_inputs 길이가 32의 배수가 아닙니다: {len(data)}")
    return [
        to_field(int.from_bytes(data[i:i + 32], "big"))
        for i in range(0, len(data), 32)
    ]


def write_public_inputs(public_inputs):
    return b"".join(int(to_field(v)).to_bytes(32, "big") for v in public_inputs)


class NargoEngine(ProvingEngine):
    """nargo / bb 바이너리를 subprocess로 호출하는 엔진.

    Args:
        config: WalletConfig (nargo_bin, bb_bin, circuits_dir)
    """

    def __init__(self, config=None):
        self.config = config if config is not None else DEFAULT_CONFIG

    def circuit_dir(self, circuit_id):
        return os.path.join(self.config.circuits_dir, circuit_id)

    def _paths(self, circuit_id):
        target = os.path.join(self.circuit_dir(circuit_id), "target")
        return {
            "target": target,
            "bytecode": os.path.join(target, f"{circuit_id}.json"),
            "witness": os.path.join(target, f"{circuit_id}.gz"),
            "proof": os.path.join(target, "proof"),
            "public_inputs": os.path.join(target, "public_inputs"),
            "vk": os.path.join(target, "vk"),
        }

    def _run(self, cmd, cwd=None):
        try:
            return subprocess.run(cmd, cwd=cwd, check=True, capture_output=True, text=True)
        except subprocess.CalledProcessError as exc:
            message = (exc.stderr or exc.stdout or str(exc)).strip()
            raise EngineError(message) from exc
        except OSError as exc:
            raise EngineError(f"{cmd[0]} 실행 실패: {exc}") from exc

    def _write(self, path, data):
        mode = "wb" if isinstance(data, bytes) else "w"
        try:
            with open(path, mode) as f:
                f.write(data)
        except OSError as exc:
            raise EngineError(f"파일을 쓸 수 없습니다: {exc}") from exc

    # ─── ProvingEngine ───

    def prove(self, circuit_id, witness):
        cfg = self.config
        circuit_dir = self.circuit_dir(circuit_id)
        paths = self._paths(circuit_id)

        self._write(os.path.join(circuit_dir, "Prover.toml"), render_prover_toml(witness))

        t0 = time.time()
        self._run([cfg.nargo_bin, "execute", circuit_id], cwd=circuit_dir)
        t_execute = time.time() - t0

        t0 = time.time()
        self._run([cfg.bb_bin, "prove",
                   "-b", paths["bytecode"],
                   "-w", paths["witness"],
                   "-o", paths["target"]])
        t_prove = time.time() - t0
        logger.debug("nargo execute %.2fs, bb prove %.2fs (%s)", t_execute, t_prove, circuit_id)

        try:
            with open(paths["proof"], "rb") as f:
                proof = f.read()
            with open(paths["public_inputs"], "rb") as f:
                public_inputs = read_public_inputs(f.read())
        except OSError as exc:
            raise EngineError(f"증명 출력을 읽을 수 없습니다: {exc}") from exc

        return proof, public_inputs

    def verify(self, circuit_id, proof, public_inputs):
        cfg = self.config
        paths = self._paths(circuit_id)
        verify_dir = os.path.join(paths["target"], "verify")
        try:
            os.makedirs(verify_dir, exist_ok=True)
        except OSError as exc:
            raise EngineError(f"검증 디렉터리를 만들 수 없습니다: {exc}") from exc

        if not os.path.exists(paths["vk"]):
            self._run([cfg.bb_bin, "write_vk", "-b", paths["bytecode"], "-o", paths["target"]])

        proof_path = os.path.join(verify_dir, "proof")
        inputs_path = os.path.join(verify_dir, "public_inputs")
        self._write(proof_path, bytes(proof))
        self._write(inputs_path, write_public_inputs(public_inputs))

        try:
            self._run([cfg.bb_bin, "verify",
                       "-k", paths["vk"],
                       "-p", proof_path,
                       "-i", inputs_path])
        except EngineError as exc:
            # bb verify는 검증 실패를 0이 아닌 종료 코드로 알린다
            if isinstance(exc.__cause__, subprocess.CalledProcessError):
                logger.info("bb verify 거부 (%s): %s", circuit_id, exc)
                return False
            raise
        return True
