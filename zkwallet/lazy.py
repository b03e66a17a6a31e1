"""
지연 초기화 셀 (Lazy Cell)
==========================

해시 프리미티브와 증명 엔진은 생성 비용이 크고 프로세스당 한 번만
만들어져야 한다. 모듈 전역 변수 대신 명시적인 셀 객체를 만들어
필요한 곳에 주입한다.

동시에 처음 호출한 스레드들이 중복 생성하지 않도록
double-checked locking으로 보호한다.

사용 예시:
    >>> cell = LazyCell(PoseidonSponge)
    >>> a = cell.get()
    >>> b = cell.get()
    >>> a is b   # True
"""

import threading


class LazyCell:
    """factory()를 최대 한 번 호출하고 결과를 캐시한다."""

    def __init__(self, factory):
        self._factory = factory
        self._lock = threading.Lock()
        self._value = None
        self._ready = False

    @property
    def initialized(self):
        return self._ready

    def get(self):
        if self._ready:
            return self._value
        with self._lock:
            if not self._ready:
                self._value = self._factory()
                self._ready = True
        return self._value
