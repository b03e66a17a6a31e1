"""
MerkleVerifier: 지갑 커밋먼트 포함 증명
=======================================

고정 깊이 GLOBAL_DEPTH의 이진 Merkle 트리에서, 리프 커밋먼트와
형제(sibling) 경로로 루트를 재계산한다.

**루트 재계산**:
  hash = leaf
  for i in 0..depth:
      index의 i번째 비트가 1  →  현재 노드는 오른쪽 자식
          hash = Hash(siblings[i], hash)
      그렇지 않으면          →  현재 노드는 왼쪽 자식
          hash = Hash(hash, siblings[i])
  return hash

  예 (depth = 2, index = 2 = 0b10):
              root
             /    \\
          s[1]     n
                  /  \\
               leaf   s[0]
      level 0: 비트 0 = 0 → n = Hash(leaf, s[0])
      level 1: 비트 1 = 1 → root = Hash(s[1], n)

경로 길이가 depth와 다르면 해싱을 시작하기 전에 ShapeMismatch를 던진다.
부분 경로는 절대 해싱하지 않는다.

**MerkleTree**:
  테스트와 백엔드 측 호출자를 위한 희소(sparse) 고정 깊이 트리.
  빈 서브트리 해시를 미리 계산해 두므로 depth 16에서도
  리프 N개 삽입 비용은 O(N · depth)이다.
"""

from zkwallet.config import GLOBAL_DEPTH
from zkwallet.errors import ShapeMismatch, StaleOrInvalidMerkleProof
from zkwallet.field import ZERO, parse_uint, to_field
from zkwallet.hasher import default_hasher
from zkwallet.state import MerklePath


class MerkleVerifier:
    """형제 경로로 Merkle 루트를 재계산하고 기대 루트와 비교한다.

    Args:
        hasher: FieldHasher
        depth: 트리 깊이 (기본 GLOBAL_DEPTH)
    """

    def __init__(self, hasher=None, depth=GLOBAL_DEPTH):
        self.hasher = hasher if hasher is not None else default_hasher()
        self.depth = depth

    def recompute_root(self, leaf, index, siblings):
        """리프, 인덱스, 형제 경로로 루트를 재계산한다.

        Args:
            leaf: 리프 커밋먼트
            index: 리프 인덱스 (0 ≤ index < 2^depth)
            siblings: 형제 해시 리스트 (길이 == depth)

        Returns:
            FR: 재계산된 루트

        Raises:
            ShapeMismatch: 경로 길이가 depth와 다르거나 인덱스가 범위를 벗어날 때
        """
        if len(siblings) != self.depth:
            raise ShapeMismatch("merkle siblings", self.depth, len(siblings))
        index = parse_uint(index)
        if index >= (1 << self.depth):
            raise ShapeMismatch("merkle index bits", self.depth, index.bit_length())

        node = to_field(leaf)
        for i, sibling in enumerate(siblings):
            if (index >> i) & 1:
                node = self.hasher.hash([sibling, node])
            else:
                node = self.hasher.hash([node, sibling])
        return node

    def verify(self, expected_root, leaf, index, siblings):
        """루트를 재계산하여 기대 루트와 비교한다.

        Returns:
            FR: 일치하는 루트

        Raises:
            StaleOrInvalidMerkleProof: 재계산 루트가 기대 루트와 다를 때
        """
        expected_root = to_field(expected_root)
        computed = self.recompute_root(leaf, index, siblings)
        if computed != expected_root:
            raise StaleOrInvalidMerkleProof(expected_root, computed)
        return computed

    def verify_path(self, expected_root, leaf, path):
        return self.verify(expected_root, leaf, path.index, path.siblings)


class MerkleTree:
    """희소 고정 깊이 Merkle 트리 (빈 리프 = FR(0)).

    속성:
        depth: 트리 깊이
        size: 지금까지 append된 리프 수
        zeros: zeros[l] = 높이 l의 빈 서브트리 해시
    """

    def __init__(self, hasher=None, depth=GLOBAL_DEPTH):
        self.hasher = hasher if hasher is not None else default_hasher()
        self.depth = depth
        self.size = 0
        self._nodes = {}

        self.zeros = [ZERO]
        for _ in range(depth):
            z = self.zeros[-1]
            self.zeros.append(self.hasher.hash([z, z]))

    @property
    def capacity(self):
        return 1 << self.depth

    def _node(self, level, position):
        return self._nodes.get((level, position), self.zeros[level])

    @property
    def root(self):
        return self._node(self.depth, 0)

    def append(self, leaf):
        """다음 빈 위치에 리프를 넣고 인덱스를 반환한다."""
        index = self.size
        self.update(index, leaf)
        return index

    def update(self, index, leaf):
        """index 위치의 리프를 교체하고 루트까지 경로를 다시 계산한다."""
        if not 0 <= index < self.capacity:
            raise ShapeMismatch("merkle index bits", self.depth, index.bit_length())
        position = index
        self._nodes[(0, position)] = to_field(leaf)
        for level in range(self.depth):
            left = self._node(level, position & ~1)
            right = self._node(level, position | 1)
            position >>= 1
            self._nodes[(level + 1, position)] = self.hasher.hash([left, right])
        self.size = max(self.size, index + 1)

    def leaf(self, index):
        return self._node(0, index)

    def path(self, index):
        """index 리프의 포함 증명 (MerklePath)."""
        if not 0 <= index < self.capacity:
            raise ShapeMismatch("merkle index bits", self.depth, index.bit_length())
        siblings = []
        position = index
        for level in range(self.depth):
            siblings.append(self._node(level, position ^ 1))
            position >>= 1
        return MerklePath(index=index, siblings=siblings)
