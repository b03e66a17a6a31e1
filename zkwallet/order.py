"""
OrderCodec: 주문 슬롯 → 단일 필드 원소
======================================

  빈 슬롯 (None)  →  FR(0)
  Order          →  Hash(price, qty, side, token_in, token_out)

슬롯 인덱스는 해시에 들어가지 않는다. 위치 정보는 orders_list 해시가
원소 순서로 묶어 준다.
"""

from zkwallet.field import ZERO
from zkwallet.hasher import default_hasher


class OrderCodec:

    def __init__(self, hasher=None):
        self.hasher = hasher if hasher is not None else default_hasher()

    def hash_order(self, order):
        """주문 하나를 해싱한다. None이면 FR(0)."""
        if order is None:
            return ZERO
        return self.hasher.hash(order.fields())

    def hash_orders(self, orders_list):
        """orders_list 전체를 슬롯 순서대로 해싱한다."""
        return [self.hash_order(order) for order in orders_list]
