"""
회로별 공개 입력 (Public Inputs)
================================

증명 엔진은 공개 입력을 위치(position) 순서의 필드 벡터로 돌려준다.
위치는 회로와의 계약이므로, 벡터를 받자마자 이름 있는 데이터클래스로
감싸서 인덱스 실수가 생기지 않게 한다.

  wallet_update_state (8):
    [0] old_wallet_commitment   [4] transfer_mint
    [1] new_wallet_commitment   [5] transfer_amount
    [2] old_merkle_root         [6] operation_type
    [3] transfer_direction      [7] nullifier

  wallet_init_state (1):
    [0] initial_commitment

  wallet_balance_update (9) / wallet_order_update (6): 구형 분리 회로.
  백엔드가 예전 증명을 재검증할 때만 쓴다.

벡터 길이가 필드 수와 다르면 ShapeMismatch. 자르거나 채우지 않는다.
"""

from dataclasses import dataclass, fields

from zkwallet.errors import ShapeMismatch
from zkwallet.field import FR, field_str, to_field


class PublicInputs:
    """위치 기반 공개 입력 데이터클래스의 공통 기능."""

    circuit_id = None

    @classmethod
    def field_names(cls):
        return [f.name for f in fields(cls)]

    @classmethod
    def from_list(cls, values):
        """위치 벡터 → 이름 있는 객체."""
        names = cls.field_names()
        values = list(values)
        if len(values) != len(names):
            raise ShapeMismatch(f"{cls.circuit_id} public inputs", len(names), len(values))
        return cls(**{name: to_field(v) for name, v in zip(names, values)})

    def to_list(self):
        """이름 있는 객체 → 위치 벡터 (FR 리스트)."""
        return [getattr(self, name) for name in self.field_names()]

    def to_dict(self):
        """JSON용: 모든 값을 10진 문자열로."""
        return {name: field_str(getattr(self, name)) for name in self.field_names()}


@dataclass(frozen=True)
class WalletUpdatePublicInputs(PublicInputs):
    old_wallet_commitment: FR
    new_wallet_commitment: FR
    old_merkle_root: FR
    transfer_direction: FR
    transfer_mint: FR
    transfer_amount: FR
    operation_type: FR
    nullifier: FR

    circuit_id = "wallet_update_state"


@dataclass(frozen=True)
class WalletInitPublicInputs(PublicInputs):
    initial_commitment: FR

    circuit_id = "wallet_init_state"


@dataclass(frozen=True)
class BalanceUpdatePublicInputs(PublicInputs):
    old_wallet_commitment: FR
    new_wallet_commitment: FR
    old_merkle_root: FR
    transfer_direction: FR
    transfer_mint: FR
    transfer_amount: FR
    nullifier: FR
    new_wallet_commitment_return: FR
    new_nonce: FR

    circuit_id = "wallet_balance_update"


@dataclass(frozen=True)
class OrderUpdatePublicInputs(PublicInputs):
    old_wallet_commitment: FR
    new_wallet_commitment: FR
    old_merkle_root: FR
    nullifier: FR
    new_wallet_commitment_return: FR
    new_nonce: FR

    circuit_id = "wallet_order_update"


CIRCUITS = {
    cls.circuit_id: cls
    for cls in (
        WalletUpdatePublicInputs,
        WalletInitPublicInputs,
        BalanceUpdatePublicInputs,
        OrderUpdatePublicInputs,
    )
}


def decode_public_inputs(circuit_id, values):
    """circuit_id에 맞는 데이터클래스로 공개 입력 벡터를 해석한다.

    Raises:
        KeyError: 알 수 없는 circuit_id
        ShapeMismatch: 벡터 길이가 회로의 공개 입력 수와 다를 때
    """
    if circuit_id not in CIRCUITS:
        raise KeyError(f"알 수 없는 회로: {circuit_id}")
    return CIRCUITS[circuit_id].from_list(values)
