from __future__ import annotations

import argparse
import asyncio
from dataclasses import asdict, replace
import json
import logging
from pathlib import Path
import sys
from typing import Any

from .config import BLANK_URL, HostCallbacks, ViewConfig, load_config
from .deeplink import DeepLinkPolicy
from .effects import Effect
from .events import MessageEvent, NavigationRequest, event_from_native
from .lifecycle import ViewState
from .messages import MessageValidator, WebViewMessage
from .platforms import PLATFORMS, get_platform
from .session import PageRender, RecordingBridge, UnsupportedVersion, ViewSession
from .version import RuntimeVersionProbe, version_passes
from .whitelist import compile_whitelist


# Runtime strings used by `replay` when --runtime-version is not given.
_DEFAULT_RUNTIMES = {
    "chromium": "Mozilla/5.0 (Linux; Android 14) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.6367.82 Mobile Safari/537.36",
    "webkit": "17.4",
}


def _effect_to_json(effect: Effect) -> dict[str, Any]:
    return {"type": type(effect).__name__, **asdict(effect)}


def _message_to_json(message: WebViewMessage) -> dict[str, Any]:
    return asdict(message)


def _config_from_args(args: argparse.Namespace) -> ViewConfig:
    config = load_config(args.config) if args.config else ViewConfig()
    if args.origin_whitelist is not None:
        config = replace(config, origin_whitelist=tuple(args.origin_whitelist))
    if args.deeplink_whitelist is not None:
        config = replace(config, deeplink_whitelist=tuple(args.deeplink_whitelist))
    return config


def _add_policy_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", type=str, default=None, help="View config JSON file (viewguard.config.v1)")
    parser.add_argument(
        "--origin-whitelist",
        nargs="+",
        default=None,
        help="Origin patterns that may load in the view (default: https://*)",
    )
    parser.add_argument(
        "--deeplink-whitelist",
        nargs="+",
        default=None,
        help="Scheme patterns that may be opened externally (default: https:)",
    )


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="viewguard",
        description="Evaluate embedded web-view navigation and message policies.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    decide = sub.add_parser("decide", help="Decide whether a navigation may load")
    decide.add_argument("url")
    decide.add_argument("--top-frame", action="store_true", help="Treat the request as a top-frame navigation")
    decide.add_argument("--lock", type=int, default=None, help="Lock identifier of the pending native navigation")
    _add_policy_args(decide)

    message = sub.add_parser("message", help="Validate a page message")
    message.add_argument("url", help="URL of the frame that posted the message")
    message.add_argument("data", help="Raw message string (JSON)")
    _add_policy_args(message)

    version = sub.add_parser("version", help="Check a version against a minimum-version spec")
    version.add_argument("version")
    group = version.add_mutually_exclusive_group(required=True)
    group.add_argument("--spec", type=str, default=None, help='Minimum version spec, e.g. "14.8.1 <15, 15.7.1"')
    group.add_argument("--platform", choices=sorted(PLATFORMS), default=None, help="Check against the platform floor")

    replay = sub.add_parser("replay", help="Replay a recorded list of native events through a session")
    replay.add_argument("events", help='JSON file: [{"kind": "onLoadingStart", "payload": {...}}, ...]')
    replay.add_argument("--platform", choices=sorted(PLATFORMS), default="chromium")
    replay.add_argument(
        "--runtime-version",
        type=str,
        default=None,
        help="Runtime version string (a user agent on chromium). Defaults to a current engine.",
    )
    replay.add_argument("--json-out", type=str, default=None, help="Write the replay report to a JSON file")
    _add_policy_args(replay)

    browse = sub.add_parser("browse", help="Open a URL in a policy-guarded Playwright page")
    browse.add_argument("url")
    browse.add_argument("--browser", choices=["chromium", "webkit"], default="chromium")
    _add_policy_args(browse)

    return parser.parse_args(argv)


def _cmd_decide(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    policy = DeepLinkPolicy(origin_whitelist=config.origin_whitelist, deeplink_whitelist=config.deeplink_whitelist)
    decision = policy.decide(NavigationRequest(url=args.url, lock_identifier=args.lock, is_top_frame=args.top_frame))

    print(f"{decision.verdict}: should_start={str(decision.should_start).lower()}")
    for effect in decision.effects:
        print(f"  {json.dumps(_effect_to_json(effect), sort_keys=True)}")
    return 0 if decision.should_start else 1


def _cmd_message(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    validator = MessageValidator(
        whitelist=compile_whitelist(config.origin_whitelist),
        download_rules=config.download_whitelist,
    )
    message = validator.process(MessageEvent(url=args.url, data=args.data))
    if message is None:
        print("dropped", file=sys.stderr)
        return 1
    print(json.dumps(_message_to_json(message), indent=2, sort_keys=True))
    return 0


def _cmd_version(args: argparse.Namespace) -> int:
    spec = args.spec if args.spec is not None else get_platform(args.platform).hard_minimum_version
    passed = version_passes(args.version, spec)
    print(f"{'pass' if passed else 'fail'}: {args.version} against {spec!r}")
    return 0 if passed else 1


def _load_events(path: Path) -> list[tuple[str, dict[str, Any]]]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Event file is not valid JSON ({exc}): {path}") from exc
    if not isinstance(data, list):
        raise ValueError(f"Event file must be a list of events: {path}")

    events: list[tuple[str, dict[str, Any]]] = []
    for i, item in enumerate(data):
        if not isinstance(item, dict) or set(item) != {"kind", "payload"}:
            raise ValueError(f"Event #{i} must be an object with exactly 'kind' and 'payload': {path}")
        events.append((str(item["kind"]), item["payload"]))
    return events


async def _replay(args: argparse.Namespace, events: list[tuple[str, dict[str, Any]]]) -> dict[str, Any]:
    runtime = args.runtime_version if args.runtime_version is not None else _DEFAULT_RUNTIMES[args.platform]

    async def fetch() -> str:
        return runtime

    messages: list[WebViewMessage] = []
    bridge = RecordingBridge()
    session = ViewSession(
        _config_from_args(args),
        traits=get_platform(args.platform),
        probe=RuntimeVersionProbe(fetch),
        bridge=bridge,
        callbacks=HostCallbacks(on_message=messages.append),
    )
    gate = await session.start()

    steps = []
    for kind, payload in events:
        effects = session.dispatch(event_from_native(kind, payload))
        steps.append({"kind": kind, "state": session.state.value, "effects": [_effect_to_json(e) for e in effects]})
    await session.drain()

    render = session.render()
    report: dict[str, Any] = {
        "platform": args.platform,
        "gate": asdict(gate) if gate is not None else None,
        "final_state": session.state.value,
        "steps": steps,
        "bridge_calls": [[name, list(call_args)] for name, call_args in bridge.calls],
        "messages": [_message_to_json(m) for m in messages],
    }
    if isinstance(render, UnsupportedVersion):
        report["render"] = {"type": "UnsupportedVersion", "message": render.message}
    elif isinstance(render, PageRender):
        overlay = render.overlay
        report["render"] = {
            "type": "PageRender",
            "overlay": None if overlay is None else {"type": type(overlay).__name__, **asdict(overlay)},
        }
    session.close()
    return report


def _cmd_replay(args: argparse.Namespace) -> int:
    events = _load_events(Path(args.events))
    report = asyncio.run(_replay(args, events))

    for step in report["steps"]:
        print(f"{step['kind']} -> {step['state']}")
        for effect in step["effects"]:
            print(f"  {json.dumps(effect, sort_keys=True)}")
    print(f"final_state={report['final_state']}")

    if args.json_out:
        out_path = Path(args.json_out)
        if out_path.suffix == "" or (out_path.exists() and out_path.is_dir()):
            out_path = out_path / "replay.json"
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(json.dumps(report, indent=2, sort_keys=True) + "\n", encoding="utf-8")

    gate = report["gate"]
    return 0 if gate is not None and gate["passed"] else 1


def _cmd_browse(args: argparse.Namespace) -> int:
    from .playwright_view import browse

    result = asyncio.run(browse(args.url, config=_config_from_args(args), browser=args.browser))
    print(f"url={result.url}")
    print(f"state={result.state.value}")
    if isinstance(result.render, UnsupportedVersion):
        print(result.render.message, file=sys.stderr)
        return 1
    # A refused source is replaced with about:blank.
    return 0 if result.state is ViewState.IDLE and result.url != BLANK_URL else 1


_COMMANDS = {
    "decide": _cmd_decide,
    "message": _cmd_message,
    "version": _cmd_version,
    "replay": _cmd_replay,
    "browse": _cmd_browse,
}


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    args = _parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        return _COMMANDS[args.command](args)
    except (RuntimeError, ValueError, OSError) as exc:
        # Raised by the config/event loaders and the Playwright binding with actionable messages.
        print(str(exc), file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
