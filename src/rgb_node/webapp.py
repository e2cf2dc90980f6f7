import asyncio
import logging
import math
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from pydantic import BaseModel, field_validator

from .config import Settings
from .device import HardwareError
from .effects import EffectEngine, Sink, parse_effect
from .observers import KEEPALIVE, ObserverHub
from .state import ColorState, StateStore

logger = logging.getLogger(__name__)

KEEPALIVE_SECONDS = 15.0


def lenient_int(v: Any) -> int | None:
    """Numbers and numeric strings become ints; anything else means "keep previous"."""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, str):
        v = v.strip()
        if not v:
            return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(f):
        return None
    return round(f)


class ColorRequest(BaseModel):
    r: int | None = None
    g: int | None = None
    b: int | None = None

    @field_validator("r", "g", "b", mode="before")
    @classmethod
    def _lenient(cls, v):
        return lenient_int(v)


class BrightnessRequest(BaseModel):
    brightness: int | None = None

    @field_validator("brightness", mode="before")
    @classmethod
    def _lenient(cls, v):
        return lenient_int(v)


class EffectRequest(BaseModel):
    name: str | None = None
    effect: str | None = None   # older clients send {"effect": "..."}
    speed: int | None = None    # strobe interval, ms
    period: int | None = None   # breathe period, ms

    @field_validator("name", "effect", mode="before")
    @classmethod
    def _name(cls, v):
        return v if isinstance(v, str) else None

    @field_validator("speed", "period", mode="before")
    @classmethod
    def _lenient(cls, v):
        return lenient_int(v)


def _ok(state: ColorState) -> JSONResponse:
    return JSONResponse({"ok": True, "state": state.to_dict()})


async def event_stream(engine: EffectEngine, keepalive: float = KEEPALIVE_SECONDS):
    observer = await engine.subscribe()
    try:
        while True:
            try:
                frame = await observer.get(timeout=keepalive)
            except asyncio.TimeoutError:
                yield KEEPALIVE
                continue
            if frame is None:
                return
            yield frame
    finally:
        engine.hub.unsubscribe(observer)


def create_app(settings: Settings, sink: Sink) -> FastAPI:
    store = StateStore()
    hub = ObserverHub()
    engine = EffectEngine(
        store,
        sink,
        hub,
        pins=settings.pins,
        pwm_range=settings.pwm_range,
        frequency=settings.pwm_frequency,
        gamma=settings.gamma,
        breathe_shape=settings.breathe_shape,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            engine.configure()
            await engine.apply()
            logger.info("outputs ready on pins %s (range %d, %d Hz)", settings.pins, settings.pwm_range, settings.pwm_frequency)
            yield
            await engine.close()
        finally:
            hub.close()
            sink.close()

    app = FastAPI(title="RGB Node", lifespan=lifespan)
    app.state.engine = engine
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    @app.exception_handler(HardwareError)
    async def hardware_error(request: Request, exc: HardwareError):
        logger.error("hardware error on %s: %s", request.url.path, exc)
        return JSONResponse({"ok": False, "detail": str(exc)}, status_code=503)

    @app.get("/", response_class=HTMLResponse)
    def index():
        return HTML_PAGE

    @app.get("/api/state")
    def get_state():
        return _ok(store.get())

    @app.post("/api/color")
    async def set_color_api(req: ColorRequest | None = None):
        req = req or ColorRequest()
        return _ok(await engine.set_color(req.r, req.g, req.b))

    @app.post("/api/brightness")
    async def set_brightness_api(req: BrightnessRequest | None = None):
        req = req or BrightnessRequest()
        return _ok(await engine.set_brightness(req.brightness))

    @app.post("/api/effect")
    async def effect_api(req: EffectRequest | None = None):
        req = req or EffectRequest()
        kind = parse_effect(req.name or req.effect, req.speed, req.period)
        return _ok(await engine.start(kind))

    @app.post("/api/effect/stop")
    async def effect_stop():
        return _ok(await engine.stop())

    @app.post("/api/off")
    async def off_api():
        return _ok(await engine.turn_off())

    @app.get("/api/events")
    async def events():
        return StreamingResponse(
            event_stream(engine),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
        )

    return app


HTML_PAGE = r"""<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <title>RGB Node</title>
  <style>
    :root{
      --bg:#0b0f17;
      --card:rgba(255,255,255,.06);
      --card2:rgba(255,255,255,.10);
      --border:rgba(255,255,255,.12);
      --text:rgba(255,255,255,.92);
      --muted:rgba(255,255,255,.60);
      --r:18px;
      --accent:#6ae4ff;
    }
    *{box-sizing:border-box}
    body{margin:0;font-family:system-ui,-apple-system,Segoe UI,Roboto,Arial;color:var(--text);background:var(--bg)}
    .wrap{max-width:640px;margin:26px auto;padding:0 16px 34px}
    .top{display:flex;justify-content:space-between;align-items:center;margin-bottom:14px}
    h1{margin:0;font-size:18px}
    .pill{font-size:12px;color:var(--muted);border:1px solid var(--border);background:var(--card);padding:8px 10px;border-radius:999px}
    .card{border:1px solid var(--border);background:var(--card);border-radius:var(--r);padding:16px;margin-bottom:12px}
    .row{display:flex;gap:10px;align-items:center;flex-wrap:wrap;margin:8px 0}
    .btn{border:1px solid var(--border);background:var(--card2);color:var(--text);padding:10px 12px;border-radius:12px;cursor:pointer}
    .btn.active{border-color:rgba(106,228,255,.55)}
    .label{min-width:92px;font-size:13px;color:var(--muted)}
    input[type=color]{width:54px;height:44px;border:none;background:none;padding:0;cursor:pointer}
    input[type=range]{width:260px;accent-color:var(--accent)}
    .swatch{width:28px;height:28px;border-radius:50%;border:1px solid var(--border)}
  </style>
</head>
<body>
<div class="wrap">
  <div class="top">
    <h1>RGB Node</h1>
    <div class="pill" id="conn">Connecting…</div>
  </div>

  <div class="card">
    <div class="row"><span class="label">Colour</span><input type="color" id="picker" value="#000000" onchange="applyColor()"></div>
    <div class="row"><span class="label">Brightness</span><input type="range" id="bright" min="0" max="100" value="100" onchange="applyBrightness()"><span id="brightVal">100%</span></div>
    <div class="row"><button class="btn" onclick="post('/api/off', {})">Off</button></div>
  </div>

  <div class="card">
    <div class="row">
      <button class="btn" id="fx-none" onclick="effect('none')">None</button>
      <button class="btn" id="fx-strobe" onclick="effect('strobe')">Strobe</button>
      <button class="btn" id="fx-breathe" onclick="effect('breathe')">Breathe</button>
    </div>
    <div class="row"><span class="label">Strobe</span><input type="range" id="speed" min="50" max="2000" value="100"><span id="speedVal">100ms</span></div>
    <div class="row"><span class="label">Breathe</span><input type="range" id="period" min="1000" max="10000" step="100" value="3000"><span id="periodVal">3000ms</span></div>
  </div>

  <div class="card">
    <div class="row"><span class="label">Live</span><div class="swatch" id="swatch"></div><code id="live">-</code></div>
  </div>
</div>
<script>
function hexToRgb(hex) {
  const v = hex.replace('#','');
  return { r: parseInt(v.substring(0,2), 16), g: parseInt(v.substring(2,4), 16), b: parseInt(v.substring(4,6), 16) };
}
function toHex(s) {
  return '#' + [s.r, s.g, s.b].map(x => x.toString(16).padStart(2, '0')).join('');
}
async function post(url, body) {
  const res = await fetch(url, { method:"POST", headers:{"Content-Type":"application/json"}, body: JSON.stringify(body) });
  return res.json().catch(() => ({}));
}
function applyColor(){ post('/api/color', hexToRgb(document.getElementById('picker').value)); }
function applyBrightness(){ post('/api/brightness', { brightness: parseInt(document.getElementById('bright').value, 10) }); }
function effect(name){
  post('/api/effect', {
    name,
    speed: parseInt(document.getElementById('speed').value, 10),
    period: parseInt(document.getElementById('period').value, 10),
  });
}
for (const id of ['speed', 'period', 'bright']) {
  document.getElementById(id).addEventListener('input', e => {
    document.getElementById(id + 'Val').textContent = e.target.value + (id === 'bright' ? '%' : 'ms');
  });
}
function render(s){
  document.getElementById('swatch').style.background = toHex(s);
  document.getElementById('live').textContent = `rgb(${s.r},${s.g},${s.b}) @ ${s.brightness}% • ${s.effect}`;
  for (const n of ['none', 'strobe', 'breathe']) {
    document.getElementById('fx-' + n).classList.toggle('active', s.effect === n);
  }
  if (s.effect === 'none') {
    document.getElementById('picker').value = toHex(s);
  }
  document.getElementById('bright').value = s.brightness;
  document.getElementById('brightVal').textContent = s.brightness + '%';
}
const es = new EventSource('/api/events');
es.onopen = () => { document.getElementById('conn').textContent = 'Live'; };
es.onerror = () => { document.getElementById('conn').textContent = 'Reconnecting…'; };
es.onmessage = (ev) => {
  const msg = JSON.parse(ev.data);
  if (msg.state) render(msg.state);
};
</script>
</body>
</html>
"""
