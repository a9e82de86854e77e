import asyncio
import logging
import sys

from src.schoolbuddy.app.schoolbuddy_app import SchoolBuddyApp
from src.schoolbuddy.models.exceptions import CredentialError, MediaValidationError
from src.schoolbuddy.models.message import Role
from src.schoolbuddy.models.video_job import VideoJobStatus
from src.schoolbuddy.utils.media_validation import load_chat_attachment, load_video_source

HELP_TEXT = (
    "Commands: /clear, /mute, /play <id>, /attach <pdf> [question], "
    "/video <image> [prompt], /quit"
)


def _print_message(message) -> None:
    speaker = "Tu" if message.role is Role.USER else "SchoolBuddy"
    print(f"[{message.id[:8]}] {speaker}: {message.text}")


async def _run_video(app: SchoolBuddyApp, argument: str) -> None:
    parts = argument.split(maxsplit=1)
    if not parts:
        print("Usage: /video <image> [prompt]")
        return
    try:
        image = load_video_source(parts[0])
    except (MediaValidationError, OSError) as exc:
        print(f"Cannot use that image: {exc}")
        return

    job = await app.video.generate(image, parts[1] if len(parts) > 1 else "")
    if job is None:
        return
    if job.status is VideoJobStatus.DONE:
        print(f"Video ready: {job.result_uri}")
    else:
        print(f"Video failed: {job.error}")


async def _run_attach(app: SchoolBuddyApp, argument: str) -> None:
    parts = argument.split(maxsplit=1)
    if not parts:
        print("Usage: /attach <pdf> [question]")
        return
    try:
        attachment = load_chat_attachment(parts[0])
    except (MediaValidationError, OSError) as exc:
        print(f"Cannot attach that file: {exc}")
        return
    reply = await app.chat.send_message(parts[1] if len(parts) > 1 else "", attachment)
    if reply is not None:
        _print_message(reply)


async def run_console(app: SchoolBuddyApp) -> None:
    for message in app.chat.messages:
        _print_message(message)
    print(HELP_TEXT)

    while True:
        try:
            line = (await asyncio.to_thread(input, "> ")).strip()
        except EOFError:
            break
        if not line:
            continue

        command, _, argument = line.partition(" ")
        if command == "/quit":
            break
        elif command == "/clear":
            app.chat.clear()
            for message in app.chat.messages:
                _print_message(message)
        elif command == "/mute":
            muted = app.chat.toggle_mute()
            print("Audio off" if muted else "Audio on")
        elif command == "/play":
            matches = [m.id for m in app.chat.messages if m.id.startswith(argument.strip())]
            if argument.strip() and matches:
                await app.chat.play_message(matches[0])
            else:
                print("Usage: /play <id>")
        elif command == "/video":
            await _run_video(app, argument)
        elif command == "/attach":
            await _run_attach(app, argument)
        else:
            reply = await app.chat.send_message(line)
            if reply is not None:
                _print_message(reply)


async def main() -> int:
    try:
        app = SchoolBuddyApp()
    except CredentialError as exc:
        logging.error("Cannot start SchoolBuddy: %s", exc)
        return 1

    try:
        await run_console(app)
    finally:
        await app.shutdown()
    return 0


if __name__ == "__main__":
    """
    Main entry point for the SchoolBuddy console.
    """
    sys.exit(asyncio.run(main()))
