"""Replay sample telemetry as a device, for manual dashboard checks.

Frames come from a newline-delimited JSON file or the built-in set below;
each one is re-stamped with the current time before it is sent.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import websockets

logger = logging.getLogger(__name__)

DEFAULT_URL = "ws://127.0.0.1:3000/ws"
DEFAULT_SYSTEM_ID = "TEST-SYSTEM-001"

SAMPLE_FRAMES: List[Dict[str, Any]] = [
    {"messageType": "ManualPhysiologicalSettings", "source": "CAN",
     "data": {"heartRate": 80, "leftStrokeLength": 28, "rightStrokeLength": 26}},
    {"messageType": "ActualStrokeLength", "source": "CAN", "data": {"pumpSide": "Left", "strokeLength": 30}},
    {"messageType": "ActualStrokeLength", "source": "CAN", "data": {"pumpSide": "Right", "strokeLength": 27}},
    {"messageType": "SupplyVoltage", "source": "CAN", "data": {"meanSupplyVoltage": 14.2}},
    {"messageType": "MotorCurrent", "source": "CAN", "data": {"pumpSide": "All", "combinedCurrent": 1.8}},
    {"messageType": "InstantaneousAtrialPressure", "source": "CAN",
     "data": {"pumpSide": "Left", "averagePressure": 8.5}},
    {"messageType": "StrokewiseAtrialPressure", "source": "CAN",
     "data": {"pumpSide": "Right", "averagePressure": 6.0, "minPressure": 2.0, "maxPressure": 11.0}},
    {"messageType": "Temperature", "source": "CAN",
     "data": {"temp1": 36.5, "temp2": 37.0, "temp3": 36.8, "temp4": 37.1}},
    {"messageType": "CPUData", "source": "CAN", "data": {"cpuLoad": 42.6}},
    {"messageType": "Accelerometer", "source": "CAN", "data": {"xAxis": 0.1, "yAxis": 0.2, "zAxis": 0.98}},
    {"messageType": "StrokewisePressure", "source": "UDP",
     "data": {"pulmonaryArterial": {"average": 18, "min": 10, "max": 25},
              "aortic": {"average": 90, "min": 70, "max": 120}}},
    {"messageType": "AliveCounter", "source": "CAN", "data": {"counter": 1}},
]


def load_frames(path: Optional[str]) -> List[Dict[str, Any]]:
    if not path:
        return [dict(frame) for frame in SAMPLE_FRAMES]
    frames = []
    for line in Path(path).read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line:
            frames.append(json.loads(line))
    return frames


def device_url(base_url: str, system_id: str, device_name: str) -> str:
    query = urlencode({"type": "device", "device-name": device_name, "SystemId": system_id})
    return f"{base_url}?{query}"


async def send_frames(ws, frames: List[Dict[str, Any]], delay_s: float) -> int:
    for frame in frames:
        frame["timestampUtc"] = int(time.time() * 1000)
        await ws.send(json.dumps(frame))
        await asyncio.sleep(delay_s)
    return len(frames)


async def run(
    url: str,
    frames: List[Dict[str, Any]],
    *,
    delay_s: float,
    loop_interval_s: float,
    once: bool,
) -> None:
    async with websockets.connect(url) as ws:
        logger.info("Connected to %s", url)
        while True:
            sent = await send_frames(ws, frames, delay_s)
            logger.info("Sent %d telemetry frames", sent)
            if once:
                return
            await asyncio.sleep(loop_interval_s)


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    p = argparse.ArgumentParser(description="Send sample pump telemetry as a device")
    p.add_argument("--url", default=DEFAULT_URL)
    p.add_argument("--system-id", default=DEFAULT_SYSTEM_ID)
    p.add_argument("--device-name", default="Test Device")
    p.add_argument("--file", help="newline-delimited JSON frames (default: built-in sample)")
    p.add_argument("--delay-ms", type=int, default=50, help="delay between frames")
    p.add_argument("--loop-ms", type=int, default=5000, help="pause between passes")
    p.add_argument("--once", action="store_true", help="send one pass and exit")
    args = p.parse_args()

    frames = load_frames(args.file)
    url = device_url(args.url, args.system_id, args.device_name)
    logger.info("System ID: %s, %d frames", args.system_id, len(frames))
    try:
        asyncio.run(run(
            url,
            frames,
            delay_s=args.delay_ms / 1000.0,
            loop_interval_s=args.loop_ms / 1000.0,
            once=args.once,
        ))
    except KeyboardInterrupt:
        logger.info("Stopped")
    except websockets.exceptions.ConnectionClosed as e:
        logger.error("Connection closed by server: %s", e)


if __name__ == "__main__":
    main()
