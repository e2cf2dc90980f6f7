import argparse
import logging
from dataclasses import replace

import uvicorn

from .config import ConfigError, Settings, load_settings, parse_pins
from .device import HardwareError, MemorySink, PigpioSink
from .effects import BREATHE_SHAPES
from .webapp import create_app

logger = logging.getLogger("rgb_node")


def build_parser(defaults: Settings) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="rgb-node", description="HTTP controller for a PWM-driven RGB LED.")
    p.add_argument("--host", default=defaults.host, help="Interface to listen on.")
    p.add_argument("--port", type=int, default=defaults.port)
    p.add_argument("--pigpio-host", default=defaults.pigpio_host, help="pigpiod address.")
    p.add_argument("--pigpio-port", type=int, default=defaults.pigpio_port)
    p.add_argument("--pins", type=parse_pins, default=defaults.pins, help="BCM pins as r,g,b (default 17,22,24).")
    p.add_argument("--pwm-range", type=int, default=defaults.pwm_range)
    p.add_argument("--pwm-frequency", type=int, default=defaults.pwm_frequency, help="PWM frequency in Hz.")
    p.add_argument("--gamma", action=argparse.BooleanOptionalAction, default=defaults.gamma,
                   help="Apply perceptual gamma correction before brightness.")
    p.add_argument("--breathe-shape", choices=BREATHE_SHAPES, default=defaults.breathe_shape)
    p.add_argument("--dry-run", action="store_true", default=defaults.dry_run,
                   help="Don't touch GPIO; keep duty cycles in memory.")
    p.add_argument("--log-level", default=defaults.log_level)
    return p


def main(argv=None):
    try:
        defaults = load_settings()
        args = build_parser(defaults).parse_args(argv)
        settings = replace(
            defaults,
            host=args.host,
            port=args.port,
            pigpio_host=args.pigpio_host,
            pigpio_port=args.pigpio_port,
            pins=args.pins,
            pwm_range=args.pwm_range,
            pwm_frequency=args.pwm_frequency,
            gamma=args.gamma,
            breathe_shape=args.breathe_shape,
            dry_run=args.dry_run,
            log_level=args.log_level.upper(),
        )
    except ConfigError as e:
        raise SystemExit(f"config error: {e}")

    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if settings.dry_run:
        sink = MemorySink()
        logger.warning("dry run: GPIO untouched")
    else:
        try:
            sink = PigpioSink(settings.pigpio_host, settings.pigpio_port)
        except HardwareError as e:
            logger.error("startup failed: %s", e)
            raise SystemExit(1)

    app = create_app(settings, sink)
    logger.info("RGB Node listening on %s:%d", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
