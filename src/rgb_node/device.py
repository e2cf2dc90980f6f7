import logging
from dataclasses import dataclass, field

import pigpio

logger = logging.getLogger(__name__)

# BCM pin numbers for the red, green and blue MOSFET gates
DEFAULT_PINS = (17, 22, 24)
DEFAULT_FREQUENCY = 800


class HardwareError(RuntimeError):
    """Raised when the PWM sink cannot be reached or rejects a call."""


class PigpioSink:
    """PWM outputs driven through a running pigpiod daemon."""

    def __init__(self, host: str = "127.0.0.1", port: int = 8888):
        self.host = host
        self.port = port
        self._pi = pigpio.pi(host, port, show_errors=False)
        if not self._pi.connected:
            raise HardwareError(f"pigpio daemon not reachable at {host}:{port}. Is pigpiod running?")
        logger.info("connected to pigpiod at %s:%s", host, port)

    def configure(self, pin: int, pwm_range: int, frequency: int) -> None:
        try:
            self._pi.set_mode(pin, pigpio.OUTPUT)
            self._pi.set_PWM_range(pin, pwm_range)
            self._pi.set_PWM_frequency(pin, frequency)
        except (pigpio.error, OSError) as e:
            raise HardwareError(f"configure pin {pin}: {e}") from e

    def write(self, pin: int, duty: int) -> None:
        try:
            self._pi.set_PWM_dutycycle(pin, int(duty))
        except (pigpio.error, OSError) as e:
            raise HardwareError(f"write pin {pin}: {e}") from e

    def close(self) -> None:
        self._pi.stop()


@dataclass
class MemorySink:
    """
    In-process sink for --dry-run and tests.
    Records every (pin, duty) write; `fail_after` makes the Nth and later writes raise.
    """
    writes: list[tuple[int, int]] = field(default_factory=list)
    config: dict[int, tuple[int, int]] = field(default_factory=dict)
    duty: dict[int, int] = field(default_factory=dict)
    fail_after: int | None = None
    closed: bool = False

    def configure(self, pin: int, pwm_range: int, frequency: int) -> None:
        self.config[pin] = (pwm_range, frequency)

    def write(self, pin: int, duty: int) -> None:
        if self.fail_after is not None and len(self.writes) >= self.fail_after:
            raise HardwareError(f"write pin {pin}: simulated failure")
        self.writes.append((pin, int(duty)))
        self.duty[pin] = int(duty)

    def frames(self) -> list[tuple[int, ...]]:
        """Writes grouped per colour application (one write per pin)."""
        n = max(1, len(self.config) or 3)
        vals = [d for _, d in self.writes]
        return [tuple(vals[i:i + n]) for i in range(0, len(vals) - n + 1, n)]

    def close(self) -> None:
        self.closed = True
