"""
MerkleVerifier / MerkleTree tests
"""
import pytest

from zkwallet.errors import ShapeMismatch, StaleOrInvalidMerkleProof
from zkwallet.field import FR, ZERO
from zkwallet.merkle import MerkleTree, MerkleVerifier
from zkwallet.state import MerklePath

from conftest import TEST_DEPTH


@pytest.fixture
def verifier(hasher):
    return MerkleVerifier(hasher, TEST_DEPTH)


def naive_root(hasher, leaves, depth):
    """전체 레벨을 직접 계산하는 독립 구현."""
    level = list(leaves) + [ZERO] * ((1 << depth) - len(leaves))
    for _ in range(depth):
        level = [hasher.hash([level[i], level[i + 1]]) for i in range(0, len(level), 2)]
    return level[0]


def naive_siblings(hasher, leaves, depth, index):
    level = list(leaves) + [ZERO] * ((1 << depth) - len(leaves))
    siblings = []
    for _ in range(depth):
        siblings.append(level[index ^ 1])
        level = [hasher.hash([level[i], level[i + 1]]) for i in range(0, len(level), 2)]
        index >>= 1
    return siblings


# =====================================================================
# 루트 재계산
# =====================================================================

class TestRecomputeRoot:
    """비트 i가 1이면 Hash(sibling, node), 0이면 Hash(node, sibling)."""

    def test_direction_bits(self, hasher):
        v = MerkleVerifier(hasher, depth=2)
        leaf, s0, s1 = FR(10), FR(20), FR(30)
        # index 2 = 0b10: level 0 왼쪽, level 1 오른쪽
        n = hasher.hash([leaf, s0])
        expected = hasher.hash([s1, n])
        assert v.recompute_root(leaf, 2, [s0, s1]) == expected

    def test_round_trip_every_leaf(self, hasher, verifier):
        leaves = [FR(100 + i) for i in range(11)]
        root = naive_root(hasher, leaves, TEST_DEPTH)
        for i, leaf in enumerate(leaves):
            siblings = naive_siblings(hasher, leaves, TEST_DEPTH, i)
            assert verifier.recompute_root(leaf, i, siblings) == root

    def test_short_path_zero_hash_calls(self, spy, verifier):
        with pytest.raises(ShapeMismatch) as exc_info:
            verifier.recompute_root(FR(1), 0, [ZERO] * (TEST_DEPTH - 1))
        assert exc_info.value.expected == TEST_DEPTH
        assert exc_info.value.actual == TEST_DEPTH - 1
        assert spy.calls == 0

    def test_long_path_rejected(self, spy, verifier):
        with pytest.raises(ShapeMismatch):
            verifier.recompute_root(FR(1), 0, [ZERO] * (TEST_DEPTH + 1))
        assert spy.calls == 0

    def test_index_out_of_range(self, spy, verifier):
        with pytest.raises(ShapeMismatch):
            verifier.recompute_root(FR(1), 1 << TEST_DEPTH, [ZERO] * TEST_DEPTH)
        assert spy.calls == 0

    def test_wrong_leaf_changes_root(self, verifier):
        siblings = [FR(i) for i in range(TEST_DEPTH)]
        assert verifier.recompute_root(1, 3, siblings) != verifier.recompute_root(2, 3, siblings)


class TestVerify:
    def test_accepts_matching_root(self, hasher, verifier):
        leaves = [FR(5), FR(6), FR(7)]
        root = naive_root(hasher, leaves, TEST_DEPTH)
        siblings = naive_siblings(hasher, leaves, TEST_DEPTH, 1)
        assert verifier.verify(root, FR(6), 1, siblings) == root

    def test_stale_root(self, hasher, verifier):
        leaves = [FR(5), FR(6)]
        old_root = naive_root(hasher, leaves, TEST_DEPTH)
        new_leaves = leaves + [FR(7)]
        siblings = naive_siblings(hasher, new_leaves, TEST_DEPTH, 0)
        with pytest.raises(StaleOrInvalidMerkleProof) as exc_info:
            verifier.verify(old_root, FR(5), 0, siblings)
        assert exc_info.value.expected_root == old_root

    def test_verify_path(self, hasher, verifier):
        tree = MerkleTree(hasher, TEST_DEPTH)
        tree.append(FR(1))
        idx = tree.append(FR(2))
        path = tree.path(idx)
        assert isinstance(path, MerklePath)
        assert verifier.verify_path(tree.root, FR(2), path) == tree.root


# =====================================================================
# MerkleTree
# =====================================================================

class TestMerkleTree:
    def test_empty_root(self, hasher):
        tree = MerkleTree(hasher, TEST_DEPTH)
        assert tree.root == naive_root(hasher, [], TEST_DEPTH)
        assert tree.size == 0
        assert tree.capacity == 1 << TEST_DEPTH

    def test_matches_naive_tree(self, hasher, verifier):
        leaves = [FR(i * 31 + 1) for i in range(6)]
        tree = MerkleTree(hasher, TEST_DEPTH)
        for leaf in leaves:
            tree.append(leaf)
        assert tree.root == naive_root(hasher, leaves, TEST_DEPTH)
        for i, leaf in enumerate(leaves):
            path = tree.path(i)
            assert list(path.siblings) == naive_siblings(hasher, leaves, TEST_DEPTH, i)
            assert verifier.recompute_root(leaf, i, path.siblings) == tree.root

    def test_update(self, hasher):
        tree = MerkleTree(hasher, TEST_DEPTH)
        for i in range(3):
            tree.append(FR(i + 1))
        tree.update(1, FR(99))
        assert tree.leaf(1) == FR(99)
        assert tree.size == 3
        assert tree.root == naive_root(hasher, [FR(1), FR(99), FR(3)], TEST_DEPTH)

    def test_full_tree(self, hasher):
        tree = MerkleTree(hasher, depth=2)
        for i in range(4):
            tree.append(FR(i))
        with pytest.raises(ShapeMismatch):
            tree.append(FR(5))

    def test_path_out_of_range(self, hasher):
        with pytest.raises(ShapeMismatch):
            MerkleTree(hasher, depth=2).path(4)
