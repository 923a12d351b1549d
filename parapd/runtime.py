"""Taichi 런타임 초기화.

본드 탐색 커널은 CPU 백엔드 + float64 로 실행된다.
프로세스당 1회 초기화를 보장한다 (MPI 랭크마다 각자 1회).
"""

import logging
import taichi as ti

logger = logging.getLogger(__name__)

_initialized = False


def init() -> bool:
    """Taichi 런타임 초기화 (CPU, f64).

    Returns:
        이번 호출에서 초기화했으면 True, 이미 초기화되어 있었으면 False
    """
    global _initialized

    if _initialized:
        return False

    ti.init(arch=ti.cpu, default_fp=ti.f64)
    logger.info("Taichi 초기화: 백엔드=cpu, 정밀도=f64")
    _initialized = True
    return True
