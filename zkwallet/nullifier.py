"""
NullifierDeriver: 소비된 커밋먼트 표시
======================================

  nullifier = Hash(sk_match, old_commitment)

반드시 소비되는 버전의 *이전* 커밋먼트로 계산한다.
같은 (sk_match, old_commitment)는 항상 같은 널리파이어를 내므로
백엔드는 이미 본 널리파이어를 가진 증명을 거부하여 이중 지출을 막는다.

이 모듈은 널리파이어를 계산만 하고 저장하지 않는다.
"""

from zkwallet.hasher import default_hasher


class NullifierDeriver:

    def __init__(self, hasher=None):
        self.hasher = hasher if hasher is not None else default_hasher()

    def derive_nullifier(self, sk_match, old_commitment):
        return self.hasher.hash([sk_match, old_commitment])
