#!/usr/bin/env python3
"""Command-line interface for Voice Alarm.

This module provides CLI commands for managing alarms and their audio.
Uses only core/ modules - no Flask dependencies.

Commands:
    list-alarms                   List all alarms
    show-alarm <id>               Show details of a specific alarm
    new-alarm --time HH:MM        Create a new alarm
    edit-alarm <id>               Edit an existing alarm
    delete-alarm <id>...          Delete one or more alarms
    toggle-alarm <id>             Enable or disable an alarm
    set-audio <id> <file>         Attach an audio file (trimmed to 30s)
    trim-audio <id>               Trim an alarm's attached audio again
    clear-audio <id>              Remove an alarm's attached audio
    export-audio <id> <file>      Write an alarm's audio to a WAV file
    list-sounds                   List built-in sounds
    play-sound <id>               Play a built-in sound
    run                           Run the alarm scheduler until interrupted
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from voice_alarm.core.alarm_service import (
    AlarmService,
    confirmation_phrase,
    describe_alarm,
)
from voice_alarm.core.audio_player import AudioPlayer
from voice_alarm.core.config import Config
from voice_alarm.core.decoder import normalize_mime_type, sniff_mime_type
from voice_alarm.core.errors import (
    DecodeError,
    EmptyWindowError,
    PersistenceError,
    PlaybackError,
    UnsupportedFormatError,
)
from voice_alarm.core.models import Alarm, Repeat, SUPPORTED_LANGUAGES, sort_alarms
from voice_alarm.core.pipeline import format_duration
from voice_alarm.core.runtime import create_scheduler, open_service, open_store
from voice_alarm.core.tones import SOUND_CATALOG
from voice_alarm.core.validation import ValidationError, parse_time

logger = logging.getLogger(__name__)


def format_alarm(alarm: Alarm, format_type: str = "text") -> str:
    """Format a single alarm for display.

    Args:
        alarm: Alarm to format
        format_type: Output format (text, json)

    Returns:
        Formatted alarm string
    """
    info = describe_alarm(alarm)
    if format_type == "json":
        return json.dumps(info, indent=2, ensure_ascii=False)

    lines = [
        f"ID: {info['id']}",
        f"Time: {info['time']} ({'enabled' if alarm.enabled else 'disabled'})",
        f"Label: {alarm.label}",
        f"Message: {alarm.message}",
        f"Repeat: {alarm.repeat.value}",
        f"Language: {SUPPORTED_LANGUAGES.get(alarm.language, alarm.language)}",
        f"Message repeats: {alarm.message_repeat}",
    ]
    audio = alarm.custom_audio
    if audio is not None:
        sound = f"Custom audio ({format_duration(audio.duration)}"
        if audio.was_trimmed:
            sound += f", trimmed from {format_duration(audio.original_duration)}"
        lines.append(sound + ")")
    else:
        lines.append(f"Sound: {SOUND_CATALOG[alarm.sound].name}")
    if info["next_trigger"]:
        lines.append(f"Next: {info['next_trigger']}")
    lines.append(f"Created: {info['created_at']}")
    return "\n".join(lines)


def _alarm_fields(args: argparse.Namespace) -> Dict[str, Any]:
    """Collect alarm fields given on the command line."""
    fields: Dict[str, Any] = {
        "label": args.label,
        "message": args.message,
        "sound": args.sound,
        "repeat": args.repeat,
        "language": args.language,
        "message_repeat": args.message_repeat,
    }
    if args.time:
        fields.update(parse_time(args.time))
    return fields


def _print_alarm_result(alarm: Alarm, args: argparse.Namespace, message: str) -> None:
    if args.format == "json":
        print(format_alarm(alarm, "json"))
    else:
        print(message)


def cmd_list_alarms(service: AlarmService, args: argparse.Namespace) -> int:
    """List all alarms.

    Args:
        service: AlarmService instance
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    alarms = sort_alarms(service.get_all_alarms())

    if args.format == "json":
        print(json.dumps([describe_alarm(a) for a in alarms], indent=2, ensure_ascii=False))
        return 0

    if not alarms:
        print("No alarms found.")
        return 0

    for alarm in alarms:
        state = "on " if alarm.enabled else "off"
        sound = "custom" if alarm.custom_audio else alarm.sound
        print(
            f"{alarm.id[:8]}  {alarm.time_label}  [{state}]  {alarm.repeat.value:<8}  "
            f"{sound:<7}  {alarm.label}"
        )
    return 0


def cmd_show_alarm(service: AlarmService, args: argparse.Namespace) -> int:
    """Show details of a specific alarm.

    Returns:
        Exit code (0 for success, 1 for not found)
    """
    alarm = service.get_alarm(args.alarm_id)
    if alarm is None:
        print(f"Error: Alarm {args.alarm_id} not found", file=sys.stderr)
        return 1
    print(format_alarm(alarm, args.format))
    return 0


def cmd_new_alarm(service: AlarmService, args: argparse.Namespace) -> int:
    """Create a new alarm.

    Returns:
        Exit code (0 for success)
    """
    alarm = service.create_alarm(**_alarm_fields(args))
    _print_alarm_result(alarm, args, f"{confirmation_phrase(alarm)} (ID: {alarm.id})")
    return 0


def cmd_edit_alarm(service: AlarmService, args: argparse.Namespace) -> int:
    """Edit an existing alarm.

    Returns:
        Exit code (0 for success, 1 for not found)
    """
    alarm = service.update_alarm(args.alarm_id, **_alarm_fields(args))
    if alarm is None:
        print(f"Error: Alarm {args.alarm_id} not found", file=sys.stderr)
        return 1
    _print_alarm_result(alarm, args, confirmation_phrase(alarm, updated=True))
    return 0


def cmd_delete_alarm(service: AlarmService, args: argparse.Namespace) -> int:
    """Delete one or more alarms.

    Returns:
        Exit code (0 if every alarm was deleted, 1 otherwise)
    """
    deleted = service.delete_alarms(args.alarm_ids)
    if args.format == "json":
        print(json.dumps({"deleted": deleted, "requested": len(args.alarm_ids)}))
    else:
        print(f"Deleted {deleted} alarm(s)")
    return 0 if deleted == len(args.alarm_ids) else 1


def cmd_toggle_alarm(service: AlarmService, args: argparse.Namespace) -> int:
    """Enable or disable an alarm.

    Returns:
        Exit code (0 for success, 1 for not found)
    """
    alarm = service.toggle_alarm(args.alarm_id)
    if alarm is None:
        print(f"Error: Alarm {args.alarm_id} not found", file=sys.stderr)
        return 1
    state = "enabled" if alarm.enabled else "disabled"
    _print_alarm_result(alarm, args, f"Alarm {alarm.id[:8]} {state}")
    return 0


def _describe_audio(alarm: Alarm) -> str:
    audio = alarm.custom_audio
    if audio is None:
        return "No custom audio"
    text = f"Audio: {format_duration(audio.duration)}"
    if audio.was_trimmed:
        text += f" (trimmed from {format_duration(audio.original_duration)})"
    return text


def cmd_set_audio(service: AlarmService, args: argparse.Namespace) -> int:
    """Attach an audio file to an alarm.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    path: Path = args.file
    if not path.is_file():
        print(f"Error: File not found: {path}", file=sys.stderr)
        return 1

    data = path.read_bytes()
    mime_type = normalize_mime_type(args.mime_type) or sniff_mime_type(data, path.name)
    alarm = service.attach_audio(args.alarm_id, data, mime_type, args.start, args.end)
    if alarm is None:
        print(f"Error: Alarm {args.alarm_id} not found", file=sys.stderr)
        return 1
    _print_alarm_result(alarm, args, _describe_audio(alarm))
    return 0


def cmd_trim_audio(service: AlarmService, args: argparse.Namespace) -> int:
    """Trim an alarm's attached audio again.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    alarm = service.retrim_audio(args.alarm_id, args.start, args.end)
    if alarm is None:
        print(f"Error: Alarm {args.alarm_id} not found", file=sys.stderr)
        return 1
    _print_alarm_result(alarm, args, _describe_audio(alarm))
    return 0


def cmd_clear_audio(service: AlarmService, args: argparse.Namespace) -> int:
    """Remove an alarm's attached audio.

    Returns:
        Exit code (0 for success, 1 for not found)
    """
    alarm = service.clear_audio(args.alarm_id)
    if alarm is None:
        print(f"Error: Alarm {args.alarm_id} not found", file=sys.stderr)
        return 1
    _print_alarm_result(alarm, args, f"Alarm {alarm.id[:8]} uses sound '{alarm.sound}'")
    return 0


def cmd_export_audio(service: AlarmService, args: argparse.Namespace) -> int:
    """Write an alarm's audio (custom or built-in) to a WAV file.

    Returns:
        Exit code (0 for success, 1 for not found)
    """
    alarm = service.get_alarm(args.alarm_id)
    if alarm is None:
        print(f"Error: Alarm {args.alarm_id} not found", file=sys.stderr)
        return 1

    if alarm.custom_audio is not None:
        data = alarm.custom_audio.to_wav()
    else:
        from voice_alarm.core.tones import synthesize
        from voice_alarm.core.wav import encode_wav

        data = encode_wav(synthesize(alarm.sound))
    args.output.write_bytes(data)
    print(f"Wrote {len(data)} bytes to {args.output}")
    return 0


def cmd_list_sounds(args: argparse.Namespace) -> int:
    """List built-in sounds.

    Returns:
        Exit code (0 for success)
    """
    sounds: List[Dict[str, Any]] = [
        {"id": s.id, "name": s.name, "duration": round(s.duration, 3)}
        for s in SOUND_CATALOG.values()
    ]
    if args.format == "json":
        print(json.dumps(sounds, indent=2))
    else:
        for sound in sounds:
            print(f"{sound['id']:<8} {sound['name']:<8} {sound['duration']}s")
    return 0


def cmd_play_sound(config: Config, args: argparse.Namespace) -> int:
    """Play a built-in sound and wait for it to finish.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    if args.sound_id not in SOUND_CATALOG:
        print(f"Error: Unknown sound '{args.sound_id}'", file=sys.stderr)
        return 1

    player = AudioPlayer(command=config.get("player_command", "mpv"))
    try:
        player.play_tone(args.sound_id)
        while player.is_playing:
            time.sleep(0.1)
    except PlaybackError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        player.release()
    return 0


def cmd_run(config: Config, args: argparse.Namespace) -> int:
    """Run the alarm scheduler in the foreground until Ctrl-C.

    Returns:
        Exit code (0 for success)
    """
    store = open_store(config)
    scheduler = create_scheduler(config, store)
    scheduler.start()
    print("Alarm scheduler running. Press Ctrl-C to stop.")
    try:
        while scheduler.is_running:
            time.sleep(0.5)
    except KeyboardInterrupt:
        print("\nStopping...")
    finally:
        scheduler.stop()
        scheduler.dispatcher.stop()
    return 0


def _add_alarm_options(parser: argparse.ArgumentParser, time_required: bool) -> None:
    parser.add_argument(
        "--time",
        type=str,
        required=time_required,
        help="Alarm time as HH:MM (24-hour)",
    )
    parser.add_argument("--label", type=str, default=None, help="Alarm label")
    parser.add_argument("--message", type=str, default=None, help="Message to speak")
    parser.add_argument(
        "--sound",
        choices=sorted(SOUND_CATALOG),
        default=None,
        help="Built-in sound",
    )
    parser.add_argument(
        "--repeat",
        choices=[r.value for r in Repeat],
        default=None,
        help="Repeat policy",
    )
    parser.add_argument(
        "--language",
        type=str,
        default=None,
        help=f"Voice language ({', '.join(SUPPORTED_LANGUAGES)})",
    )
    parser.add_argument(
        "--message-repeat",
        type=int,
        default=None,
        help="How many times to speak the message (1-5)",
    )


def add_cli_subparser(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    """Add CLI subparser and its nested subcommands.

    Args:
        subparsers: Parent subparsers object to add CLI parser to
    """
    cli_parser = subparsers.add_parser(
        "cli",
        help="Command-line interface",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    cli_parser.add_argument(
        "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )

    cli_subparsers = cli_parser.add_subparsers(dest="cli_command", help="Command to run")

    cli_subparsers.add_parser("list-alarms", help="List all alarms")

    show_parser = cli_subparsers.add_parser("show-alarm", help="Show alarm details")
    show_parser.add_argument("alarm_id", type=str, help="Alarm ID (or unique prefix)")

    new_parser = cli_subparsers.add_parser("new-alarm", help="Create a new alarm")
    _add_alarm_options(new_parser, time_required=True)

    edit_parser = cli_subparsers.add_parser("edit-alarm", help="Edit an alarm")
    edit_parser.add_argument("alarm_id", type=str, help="Alarm ID (or unique prefix)")
    _add_alarm_options(edit_parser, time_required=False)

    delete_parser = cli_subparsers.add_parser("delete-alarm", help="Delete alarms")
    delete_parser.add_argument("alarm_ids", nargs="+", help="Alarm IDs (or unique prefixes)")

    toggle_parser = cli_subparsers.add_parser("toggle-alarm", help="Enable or disable an alarm")
    toggle_parser.add_argument("alarm_id", type=str, help="Alarm ID (or unique prefix)")

    set_audio_parser = cli_subparsers.add_parser(
        "set-audio", help="Attach an audio file (MP3, WAV, OGG, M4A) to an alarm"
    )
    set_audio_parser.add_argument("alarm_id", type=str, help="Alarm ID (or unique prefix)")
    set_audio_parser.add_argument("file", type=Path, help="Audio file")
    set_audio_parser.add_argument("--start", type=float, default=None, help="Start (seconds)")
    set_audio_parser.add_argument("--end", type=float, default=None, help="End (seconds)")
    set_audio_parser.add_argument(
        "--mime-type",
        type=str,
        default=None,
        help="MIME type (default: detect from contents and extension)",
    )

    trim_parser = cli_subparsers.add_parser("trim-audio", help="Trim an alarm's audio again")
    trim_parser.add_argument("alarm_id", type=str, help="Alarm ID (or unique prefix)")
    trim_parser.add_argument("--start", type=float, default=None, help="Start (seconds)")
    trim_parser.add_argument("--end", type=float, default=None, help="End (seconds)")

    clear_parser = cli_subparsers.add_parser("clear-audio", help="Remove an alarm's audio")
    clear_parser.add_argument("alarm_id", type=str, help="Alarm ID (or unique prefix)")

    export_parser = cli_subparsers.add_parser("export-audio", help="Write alarm audio to WAV")
    export_parser.add_argument("alarm_id", type=str, help="Alarm ID (or unique prefix)")
    export_parser.add_argument("output", type=Path, help="Output WAV file")

    cli_subparsers.add_parser("list-sounds", help="List built-in sounds")

    play_parser = cli_subparsers.add_parser("play-sound", help="Play a built-in sound")
    play_parser.add_argument("sound_id", type=str, help="Sound ID")

    cli_subparsers.add_parser("run", help="Run the alarm scheduler in the foreground")


def run(config_dir: Optional[Path], args: argparse.Namespace) -> int:
    """Run CLI with given arguments.

    Args:
        config_dir: Custom configuration directory or None for default
        args: Parsed command-line arguments (should have cli_command attribute)

    Returns:
        Exit code (0 for success, 1 for error)
    """
    if not getattr(args, "cli_command", None):
        print("Error: No CLI command specified. Use --help for available commands.", file=sys.stderr)
        return 1

    config = Config(config_dir=config_dir)
    service = open_service(config)

    commands = {
        "list-alarms": cmd_list_alarms,
        "show-alarm": cmd_show_alarm,
        "new-alarm": cmd_new_alarm,
        "edit-alarm": cmd_edit_alarm,
        "delete-alarm": cmd_delete_alarm,
        "toggle-alarm": cmd_toggle_alarm,
        "set-audio": cmd_set_audio,
        "trim-audio": cmd_trim_audio,
        "clear-audio": cmd_clear_audio,
        "export-audio": cmd_export_audio,
    }

    try:
        if args.cli_command in commands:
            return commands[args.cli_command](service, args)
        elif args.cli_command == "list-sounds":
            return cmd_list_sounds(args)
        elif args.cli_command == "play-sound":
            return cmd_play_sound(config, args)
        elif args.cli_command == "run":
            return cmd_run(config, args)
        else:
            print(f"Error: Unknown command '{args.cli_command}'", file=sys.stderr)
            return 1
    except ValidationError as e:
        print(f"Error: Invalid {e.field} - {e.message}", file=sys.stderr)
        return 1
    except (UnsupportedFormatError, DecodeError, EmptyWindowError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except PersistenceError as e:
        print(f"Error: Could not save alarms - {e}", file=sys.stderr)
        return 1
