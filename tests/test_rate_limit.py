import time

from evacuate.core.rate_limit import LocationUpdateThrottle


def test_zero_interval_allows_everything():
    """间隔为 0 时不限流"""
    throttle = LocationUpdateThrottle()

    assert all(throttle.is_allowed("c1") for _ in range(5))


def test_location_throttle_unit():
    """测试位置上报节流器的基础逻辑"""
    throttle = LocationUpdateThrottle(interval_seconds=0.2)

    # 第一次上报应该允许
    assert throttle.is_allowed("c1") is True

    # 立刻上报第二次应该被拦截，其他连接不受影响
    assert throttle.is_allowed("c1") is False
    assert throttle.is_allowed("c2") is True

    # 等待超过间隔时间后应该放行
    time.sleep(0.25)
    assert throttle.is_allowed("c1") is True

    # 最后清理记录
    throttle.remove_client("c1")
    assert "c1" not in throttle._last_update_time
