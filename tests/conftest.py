import itertools
import os
import sys

import pytest

# 프로젝트 루트를 sys.path에 추가
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from zkwallet.commitment import CommitmentCodec
from zkwallet.config import WalletConfig
from zkwallet.engine.native import NativeEngine
from zkwallet.hasher import FieldHasher
from zkwallet.merkle import MerkleTree
from zkwallet.poseidon import HashPrimitive, PoseidonSponge
from zkwallet.state import Keys, WalletState
from zkwallet.transition import TransitionBuilder


# ── 테스트 상수 ──
TEST_DEPTH = 4
SK_MATCH = 0x1234567890ABCDEF
PK_ROOT = "0x00000000000000000000000000000000000000000000000000000000deadbeef"

_SPONGE = PoseidonSponge()


class SpyPrimitive(HashPrimitive):
    """호출 횟수를 세는 해시 프리미티브."""

    def __init__(self, inner=None):
        self.inner = inner if inner is not None else _SPONGE
        self.calls = 0

    def hash(self, elements):
        self.calls += 1
        return self.inner.hash(elements)


# ── 설정 / 해셔 ──

@pytest.fixture
def config():
    return WalletConfig(global_depth=TEST_DEPTH)


@pytest.fixture
def spy():
    return SpyPrimitive()


@pytest.fixture
def hasher(spy):
    return FieldHasher(spy)


@pytest.fixture
def codec(hasher, config):
    return CommitmentCodec(hasher, config)


@pytest.fixture
def keys():
    # spy 호출 횟수에 잡히지 않도록 별도 해셔로 유도
    pk_match = FieldHasher(_SPONGE).hash([SK_MATCH])
    return Keys(pk_root=PK_ROOT, pk_match=pk_match, sk_match=SK_MATCH).require()


@pytest.fixture
def blinder_source():
    counter = itertools.count(1001)
    return lambda: next(counter)


@pytest.fixture
def builder(config, blinder_source):
    ids = itertools.count(1)
    return TransitionBuilder(config, blinder_source=blinder_source,
                             order_id_source=lambda: f"order-{next(ids)}")


@pytest.fixture
def engine(config, hasher):
    return NativeEngine(config, hasher)


# ── 지갑 픽스처 ──

def funded_state(config, balances=None, blinder=7):
    """balances = {token_index: amount}"""
    available = [0] * config.n_tokens
    for token, amount in (balances or {}).items():
        available[token] = amount
    return WalletState(
        available_balances=available,
        reserved_balances=[0] * config.n_tokens,
        orders_list=[None] * config.max_pending_orders,
        fees=0,
        blinder=blinder,
    )


class WalletFixture:
    """Merkle 트리에 등록된 지갑 하나 (다른 지갑 리프 몇 개 포함)."""

    def __init__(self, codec, keys, state, nonce=0, depth=TEST_DEPTH):
        self.codec = codec
        self.keys = keys
        self.state = state
        self.nonce = nonce
        self.tree = MerkleTree(codec.hasher, depth)
        self.tree.append(111)
        self.tree.append(222)
        self.commitment = codec.commit_state(state, keys, nonce)
        self.index = self.tree.append(self.commitment)
        self.tree.append(333)
        self.path = self.tree.path(self.index)

    @property
    def root(self):
        return self.tree.root


@pytest.fixture
def wallet(codec, keys, config):
    return WalletFixture(codec, keys, funded_state(config, {0: 1000, 1: 500}), nonce=3)
