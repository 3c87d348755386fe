#!/usr/bin/env python3
"""
Operator tools for the oral exam service.

    python admin_tools.py generate-links --csv students.csv [--base-url URL]
    python admin_tools.py import-questions --csv bank.csv
    python admin_tools.py admin-token --reviewer NAME
    python admin_tools.py list-sessions
"""

import argparse
import asyncio
import csv
import os
from typing import List

from dotenv import load_dotenv

dotenv_path = os.path.join(os.path.dirname(__file__), '.env')
if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path)

from oral_exam.core.database import AsyncSessionLocal, create_db_and_tables  # noqa: E402
from oral_exam.core.exceptions import ExamError  # noqa: E402
from oral_exam.core.security import create_admin_token  # noqa: E402
from oral_exam.schemas.auth import MagicLinkRequest, MagicLinkResponse  # noqa: E402
from oral_exam.services.admin_service import AdminService  # noqa: E402
from oral_exam.services.session_store import SessionStore  # noqa: E402
from oral_exam.utils.timezone import parse_iso  # noqa: E402

STUDENT_COLUMNS = ("id_number", "first_name", "last_name", "email", "slot_start", "slot_end")


def read_csv(path: str) -> List[dict]:
    with open(path, newline="", encoding="utf-8-sig") as f:
        return [
            {key.strip(): (value or "").strip() for key, value in row.items() if key}
            for row in csv.DictReader(f)
        ]


async def generate_links(csv_path: str, base_url: str = None, session_factory=AsyncSessionLocal) -> List[MagicLinkResponse]:
    """Hash IDs, upsert the roster and print one magic link per student row."""
    rows = read_csv(csv_path)
    links = []
    async with session_factory() as db:
        service = AdminService(SessionStore(db))
        for line, row in enumerate(rows, start=2):
            missing = [column for column in STUDENT_COLUMNS[:4] if not row.get(column)]
            if missing:
                print(f"❌ line {line}: missing {', '.join(missing)}")
                continue
            id_number = row["id_number"]
            try:
                response = await service.generate_magic_link(MagicLinkRequest(
                    student_id=id_number,
                    id_last4=id_number[-4:].rjust(4, "0"),
                    first_name=row["first_name"],
                    last_name=row["last_name"],
                    email=row["email"],
                    slot_start=parse_iso(row["slot_start"]) if row.get("slot_start") else None,
                    slot_end=parse_iso(row["slot_end"]) if row.get("slot_end") else None,
                    base_url=base_url,
                ))
            except (ExamError, ValueError) as e:
                print(f"❌ line {line}: {e}")
                continue
            links.append(response)
            print(f"✅ {row['first_name']} {row['last_name']} <{row['email']}>")
            print(f"   Hash: {response.student_id_hash}")
            print(f"   Slot: {response.slot_start:%Y-%m-%d %H:%M} - {response.slot_end:%H:%M} UTC")
            print(f"   Link: {response.link}")
    print(f"\n{len(links)}/{len(rows)} links generated")
    return links


async def import_questions(csv_path: str, session_factory=AsyncSessionLocal) -> int:
    """Load the question bank. Columns: id, question_text, sample_answer, difficulty, topic."""
    rows = read_csv(csv_path)
    imported = 0
    async with session_factory() as db:
        store = SessionStore(db)
        for line, row in enumerate(rows, start=2):
            if not row.get("question_text"):
                print(f"❌ line {line}: missing question_text")
                continue
            await store.add_question(
                question_text=row["question_text"],
                sample_answer=row.get("sample_answer", ""),
                difficulty=int(row.get("difficulty") or 1),
                topic=row.get("topic") or None,
                question_id=int(row["id"]) if row.get("id") else None,
            )
            imported += 1
    print(f"✅ {imported} questions imported")
    return imported


async def list_sessions(session_factory=AsyncSessionLocal) -> None:
    async with session_factory() as db:
        summaries = await AdminService(SessionStore(db)).list_sessions()
    if not summaries:
        print("No sessions")
        return
    print(f"{'Session':<38} {'Student':<24} {'ID':<6} {'Status':<13} {'Score':>5}  Final")
    print("-" * 96)
    for s in summaries:
        score = "-" if s.total_score is None else str(s.total_score)
        print(f"{s.session_id:<38} {s.student_name[:24]:<24} {s.id_last4:<6} {s.status:<13} {score:>5}  {'yes' if s.finalized else 'no'}")
    print(f"\nTotal: {len(summaries)}")


def main():
    parser = argparse.ArgumentParser(description="Oral exam admin tools")
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    links_parser = subparsers.add_parser('generate-links', help='Generate magic links from a student CSV')
    links_parser.add_argument('--csv', required=True, help='CSV with id_number,first_name,last_name,email,slot_start,slot_end')
    links_parser.add_argument('--base-url', help='Base URL of the exam app')

    questions_parser = subparsers.add_parser('import-questions', help='Import the question bank from CSV')
    questions_parser.add_argument('--csv', required=True, help='CSV with id,question_text,sample_answer,difficulty,topic')

    token_parser = subparsers.add_parser('admin-token', help='Issue an admin bearer token')
    token_parser.add_argument('--reviewer', required=True, help='Reviewer name recorded on finalize')

    subparsers.add_parser('list-sessions', help='List exam sessions')

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    if args.command == 'admin-token':
        print(create_admin_token(args.reviewer))
        return

    async def run():
        await create_db_and_tables()
        if args.command == 'generate-links':
            await generate_links(args.csv, args.base_url)
        elif args.command == 'import-questions':
            await import_questions(args.csv)
        elif args.command == 'list-sessions':
            await list_sessions()

    asyncio.run(run())


if __name__ == "__main__":
    main()
