import numpy as np

PWM_RANGE = 255
GAMMA = 2.2
GAMMA_SAMPLES = 65

# Perceptual curve sampled at 65 points over 0..255
GAMMA_TABLE: tuple[int, ...] = tuple(
    int(v) for v in np.round(255 * np.power(np.linspace(0.0, 1.0, GAMMA_SAMPLES), GAMMA))
)


def clamp(v: int, lo: int, hi: int) -> int:
    return lo if v < lo else hi if v > hi else v


def gamma_lookup(value: int) -> int:
    value = clamp(value, 0, 255)
    idx = round(value / 255 * (len(GAMMA_TABLE) - 1))
    return GAMMA_TABLE[idx]


def scale(value: int, brightness: int, gamma: bool = False, pwm_range: int = PWM_RANGE) -> int:
    """
    Map a logical channel value (0..255) at brightness (0..100 %) to a duty cycle.
    Out-of-range inputs are clamped. With gamma on, the lookup happens first
    and brightness is applied to the corrected value.
    """
    value = clamp(int(value), 0, 255)
    brightness = clamp(int(brightness), 0, 100)
    if gamma:
        value = gamma_lookup(value)
    if pwm_range == PWM_RANGE:
        return round(value * brightness / 100)
    return round(value * brightness / 100 * pwm_range / 255)


def to_duty(r: int, g: int, b: int, brightness: int,
            gamma: bool = False, pwm_range: int = PWM_RANGE) -> tuple[int, int, int]:
    return (
        scale(r, brightness, gamma, pwm_range),
        scale(g, brightness, gamma, pwm_range),
        scale(b, brightness, gamma, pwm_range),
    )
