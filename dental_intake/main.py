"""CLI entry point for the dental intake agent.

A terminal intake conversation for testing and development.  For
production, use the FastAPI server (dental_intake/server.py).

Usage:
    python -m dental_intake.main --business-id demo            # quiet
    python -m dental_intake.main --business-id demo --debug    # shows API calls

With ``DATA_STORE_BACKEND=memory`` the roster is empty unless seeded, so
``match`` will report that no dentists are available.
"""

from __future__ import annotations

import argparse
import logging

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

COMMANDS_HELP = (
    "  Commands: 'quit' to exit, 'new' for a new session,\n"
    "            'match' to rank dentists, 'select <n>' to pick one,\n"
    "            'done <appointment-id>' to complete the intake."
)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
    )

    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("dental_intake").setLevel(logging.DEBUG if debug else logging.INFO)


def _print_widget(widget) -> None:
    if widget is None:
        return
    label = widget.title or widget.type.value
    print(f"  [widget: {widget.type.value}] {label}")


def _start(service, business_id: str):
    session = service.create_session(business_id)
    if session is None:
        print("Could not start an intake session. Check the data store configuration.\n")
        return None
    logger.info("Started new intake session: %s", session.session_id)
    return session


def main():
    """Run the interactive CLI intake loop."""
    parser = argparse.ArgumentParser(description="Dental intake agent CLI")
    parser.add_argument("--business-id", default="demo", help="Practice (tenant) id")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    # Imported after logging is configured: config resolves secrets on import.
    from dental_intake.intake.errors import IntakeError  # noqa: PLC0415
    from dental_intake.intake.service import create_intake_service  # noqa: PLC0415

    print("\n" + "=" * 60)
    print("  Dental Intake Agent - CLI")
    print("=" * 60)
    print("  Describe what's bothering you and press Enter.")
    print(COMMANDS_HELP)
    print("=" * 60 + "\n")

    service = create_intake_service()
    session = _start(service, args.business_id)
    if session is None:
        return
    last_match = None

    while True:
        try:
            user_input = input("You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            break

        if not user_input:
            continue
        command, _, argument = user_input.partition(" ")
        command = command.lower()

        if command in ("exit", "quit", "q"):
            if not session.status.is_terminal:
                service.abandon_intake(session.session_id, session.status)
            print("\nGoodbye! Take care.")
            break

        if command == "new":
            if not session.status.is_terminal:
                service.abandon_intake(session.session_id, session.status)
            session = _start(service, args.business_id)
            if session is None:
                break
            last_match = None
            print(f"\n>> New session started: {session.session_id}\n")
            continue

        try:
            if command == "match":
                last_match = service.perform_dentist_matching(session.session_id)
                if last_match is None:
                    print("\nNo dentists could be matched right now.\n")
                    continue
                print(f"\n{last_match.matching_summary}")
                for m in last_match.matched_dentists:
                    print(
                        f"  {m.recommendation_rank}. {m.dentist_info.full_name} "
                        f"({m.overall_match_score:.0f}/100) - {m.match_reasoning}"
                    )
                print()
                continue

            if command == "select":
                if last_match is None or not argument.isdigit():
                    print("\nRun 'match' first, then 'select <n>'.\n")
                    continue
                index = int(argument) - 1
                if not 0 <= index < len(last_match.matched_dentists):
                    print("\nNo dentist with that number.\n")
                    continue
                chosen = last_match.matched_dentists[index]
                result = service.select_dentist(session.session_id, chosen.dentist_id)
                print(f"\nSelected {chosen.dentist_info.full_name}: {'ok' if result else 'failed'}\n")
                session = service.get_session(session.session_id) or session
                continue

            if command == "done":
                if not argument:
                    print("\nUsage: done <appointment-id>\n")
                    continue
                result = service.complete_intake(session.session_id, argument)
                if result:
                    print("\nIntake completed. See you at your appointment!\n")
                else:
                    print("\nCould not complete the intake.\n")
                session = service.get_session(session.session_id) or session
                continue

            turn = service.process_patient_message(session.session_id, user_input)
            session = turn.session
            print(f"\nLinda: {turn.ai_response.response_message}")
            _print_widget(turn.widget)
            print()

        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break
        except IntakeError as e:
            logger.exception("Error processing message")
            print(f"\nLinda: I'm sorry, something went wrong: {e}")
            print("     Please try again or type 'new' to start a fresh session.\n")


if __name__ == "__main__":
    main()
