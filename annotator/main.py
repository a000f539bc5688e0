"""annotator 프로세스 진입점 (stdin/stdout 프레임 루프)."""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import timedelta
from typing import BinaryIO, Optional, Sequence

from .hub import AnnotationHub
from .models import Response
from .protocol import MAX_FRAME_BYTES, FrameReader, ProtocolError, TruncatedFrameError, write_frame

LOGGER = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Line annotation storage host (length-prefixed JSON over stdio)")
    parser.add_argument("--log-level", default="WARNING", help="로그 레벨 (DEBUG/INFO/...)")
    parser.add_argument("--log-file", default=None, help="로그 파일 경로 (default: stderr, stdout은 프로토콜 전용)")
    parser.add_argument("--max-frame-bytes", type=int, default=MAX_FRAME_BYTES, help="프레임 최대 크기(바이트)")
    parser.add_argument("--stale-seconds", type=int, default=300, help="편집 표시 만료 시간(초)")
    # 브라우저 native messaging 호스트로 실행될 때 붙는 위치 인자(origin 등)는 무시
    args, _unknown = parser.parse_known_args(argv)
    return args


def configure_logging(level: str, log_file: Optional[str] = None) -> None:
    handler: logging.Handler
    if log_file:
        handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format=LOG_FORMAT,
        handlers=[handler],
    )


def serve(
    hub: AnnotationHub,
    instream: BinaryIO,
    outstream: BinaryIO,
    *,
    max_frame_bytes: int = MAX_FRAME_BYTES,
) -> int:
    """스트림이 끝날 때까지 요청 하나에 응답 하나씩 처리. 처리한 프레임 수를 반환."""
    reader = FrameReader(instream, max_frame_bytes=max_frame_bytes)
    handled = 0
    while True:
        try:
            payload = reader.read_frame()
        except TruncatedFrameError as exc:
            LOGGER.warning("input closed mid-frame: %s", exc)
            _send(outstream, Response.fail(str(exc)), max_frame_bytes)
            break
        except ProtocolError as exc:
            LOGGER.warning("bad frame: %s", exc)
            _send(outstream, Response.fail(str(exc)), max_frame_bytes)
            if reader.eof:
                break
            continue
        if payload is None:
            LOGGER.debug("input closed")
            break

        handled += 1
        response = hub.handle_payload(payload)
        _send(outstream, response, max_frame_bytes)
    return handled


def _send(outstream: BinaryIO, response: Response, max_frame_bytes: int) -> None:
    try:
        write_frame(outstream, response.to_dict(), max_frame_bytes=max_frame_bytes)
    except ProtocolError as exc:
        LOGGER.error("response encode failed: %s", exc)
        write_frame(outstream, Response.fail(str(exc)).to_dict())


def run(args: argparse.Namespace) -> int:
    configure_logging(args.log_level, args.log_file)
    hub = AnnotationHub(stale_after=timedelta(seconds=args.stale_seconds))
    LOGGER.info("annotator host started")
    try:
        serve(hub, sys.stdin.buffer, sys.stdout.buffer, max_frame_bytes=args.max_frame_bytes)
    except KeyboardInterrupt:
        LOGGER.info("KeyboardInterrupt → shutting down")
    except (BrokenPipeError, ConnectionError) as exc:
        LOGGER.info("output closed: %s", exc)
    return 0


def main() -> None:
    args = parse_args()
    sys.exit(run(args))


if __name__ == "__main__":
    main()
