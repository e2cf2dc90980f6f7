import pytest

from rgb_node.colormath import GAMMA_TABLE, clamp, gamma_lookup, scale, to_duty


def test_gamma_table_shape():
    assert len(GAMMA_TABLE) >= 65
    assert GAMMA_TABLE[0] == 0
    assert GAMMA_TABLE[-1] == 255
    assert all(a <= b for a, b in zip(GAMMA_TABLE, GAMMA_TABLE[1:]))


def test_linear_scale():
    assert scale(255, 100) == 255
    assert scale(200, 50) == 100
    assert scale(10, 0) == 0
    assert scale(0, 100) == 0


@pytest.mark.parametrize("v, edge", [(-1, 0), (-500, 0), (256, 255), (10_000, 255)])
def test_value_clamped_to_nearest_edge(v, edge):
    for brightness in (0, 37, 100):
        assert scale(v, brightness) == scale(edge, brightness)
        assert scale(v, brightness, gamma=True) == scale(edge, brightness, gamma=True)


@pytest.mark.parametrize("pct, edge", [(-20, 0), (101, 100), (900, 100)])
def test_brightness_clamped_to_nearest_edge(pct, edge):
    for v in (0, 1, 128, 255):
        assert scale(v, pct) == scale(v, edge)


def test_gamma_applied_before_brightness():
    g = gamma_lookup(128)
    assert g < 128
    assert scale(128, 50, gamma=True) == round(g * 50 / 100)


@pytest.mark.parametrize("brightness", [1, 25, 50, 99, 100])
def test_gamma_monotonic(brightness):
    out = [scale(v, brightness, gamma=True) for v in range(256)]
    assert all(a <= b for a, b in zip(out, out[1:]))


def test_pwm_range_rescales():
    assert scale(255, 100, pwm_range=1000) == 1000
    assert scale(0, 100, pwm_range=1000) == 0
    assert scale(255, 50, pwm_range=1000) == 500


def test_to_duty_is_deterministic():
    a = to_duty(12, 200, 255, 80, gamma=True)
    b = to_duty(12, 200, 255, 80, gamma=True)
    assert a == b
    assert len(a) == 3


def test_clamp():
    assert clamp(5, 0, 3) == 3
    assert clamp(-5, 0, 3) == 0
    assert clamp(2, 0, 3) == 2
