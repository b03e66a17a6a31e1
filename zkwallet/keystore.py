"""
키 저장소 경계 (Key Storage Boundary)
=====================================

지갑별 {pk_root, pk_match, sk_match}를 TinyDB에 보관한다.
세 키 중 하나라도 없으면 해싱을 시작하기 전에 KeysNotFound를 던진다.

**키 유도**:
  sk_match = SHA-256(user_secret)의 상위 252비트   (항상 < p)
  pk_match = Hash(sk_match)
  pk_root  = 호출자가 준 값 (보통 0x 주소)

값은 모두 10진 문자열로 저장한다 (field_str).
"""

import hashlib
import logging

from tinydb import Query

from zkwallet.errors import KeysNotFound
from zkwallet.field import field_str, fr_short
from zkwallet.hasher import default_hasher
from zkwallet.state import Keys


logger = logging.getLogger(__name__)

DATA = Query()


def derive_keys(user_secret, pk_root, hasher=None):
    """사용자 비밀값에서 매칭 키 쌍을 유도한다.

    Args:
        user_secret: str 또는 bytes
        pk_root: 공개 루트 키 (0x 주소 등)
        hasher: FieldHasher

    Returns:
        Keys: FR로 정규화된 키
    """
    hasher = hasher if hasher is not None else default_hasher()
    if isinstance(user_secret, str):
        user_secret = user_secret.encode()
    if not user_secret:
        raise KeysNotFound("user_secret이 비어 있습니다")

    digest = hashlib.sha256(user_secret).hexdigest()
    sk_match = int(digest[:63], 16)
    pk_match = hasher.hash([sk_match])
    return Keys(pk_root=pk_root, pk_match=pk_match, sk_match=sk_match).require()


class KeyStore:
    """TinyDB 테이블 'keys'에 지갑 키를 저장한다.

    Args:
        db: TinyDB 인스턴스 (테스트에서는 MemoryStorage)
    """

    TABLE = "keys"

    def __init__(self, db):
        self.table = db.table(self.TABLE)

    def save(self, wallet_id, keys):
        keys = keys.require()
        self.table.upsert(
            {
                "wallet_id": wallet_id,
                "pk_root": field_str(keys.pk_root),
                "pk_match": field_str(keys.pk_match),
                "sk_match": field_str(keys.sk_match),
            },
            DATA.wallet_id == wallet_id,
        )
        logger.debug("키 저장: wallet=%s pk_match=%s", wallet_id, fr_short(keys.pk_match))
        return keys

    def load(self, wallet_id):
        """저장된 키를 읽는다.

        Raises:
            KeysNotFound: 레코드가 없거나 키가 일부 빠졌을 때
        """
        result = self.table.search(DATA.wallet_id == wallet_id)
        if not result:
            raise KeysNotFound(f"지갑 {wallet_id}의 키가 없습니다")
        record = result[0]
        return Keys(
            pk_root=record.get("pk_root"),
            pk_match=record.get("pk_match"),
            sk_match=record.get("sk_match"),
        ).require()

    def remove(self, wallet_id):
        self.table.remove(DATA.wallet_id == wallet_id)
