#!/usr/bin/env python3
"""Create the content store tables and seed an admin account.

Usage:
    python scripts/seed.py
    python scripts/seed.py --admin-password 's3cret!' --sample-content

Options:
    --admin-username NAME   Admin username (default: admin)
    --admin-password PASS   Admin password (default: a generated temporary one)
    --sample-content        Also create sample religions and topics

Prerequisites:
    - DATABASE_URL set in .env or environment
"""

import argparse
import asyncio
import os
import sys

# Add project root to path so we can import app modules
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

# Load .env before importing app modules
from dotenv import load_dotenv
load_dotenv(os.path.join(PROJECT_ROOT, ".env"))

from sqlalchemy import select

from app.auth.security import hash_password
from app.cms.religions import create_religion
from app.cms.topics import create_topic
from app.db.models import Base, Religion, User, UserRole, UserStatus
from app.db.session import async_session, engine
from app.mail.passwords import generate_temporary_password

SAMPLE_CONTENT = [
    {
        "name": "እስልምና",
        "name_en": "Islam",
        "color": "#8B4513",
        "topics": [("ፍጹም አንድነት", "The Trinity"), ("የኢየሱስ ክርስቶስ አምላክነት", "The Divinity of Jesus Christ")],
    },
    {
        "name": "ኦርቶዶክስ",
        "name_en": "Orthodox",
        "color": "#0066CC",
        "topics": [("የኦርቶዶክስ ጸሎት", "Orthodox Prayer"), ("የኦርቶዶክስ ጾም", "Orthodox Fasting")],
    },
    {
        "name": "ፕሮቴስታንት",
        "name_en": "Protestant",
        "color": "#CC6600",
        "topics": [("የፕሮቴስታንት ጸሎት", "Protestant Prayer")],
    },
]


async def seed(admin_username: str, admin_password: str | None, sample_content: bool) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("✓ Tables created")

    async with async_session() as session:
        result = await session.execute(select(User).where(User.username == admin_username))
        if result.scalar_one_or_none():
            print(f"  Admin '{admin_username}' already exists, leaving it unchanged")
        else:
            password = admin_password or generate_temporary_password()
            session.add(
                User(
                    username=admin_username,
                    password_hash=hash_password(password),
                    role=UserRole.ADMIN,
                    status=UserStatus.ACTIVE,
                    requires_password_change=admin_password is None,
                )
            )
            print(f"✓ Created admin '{admin_username}'")
            if admin_password is None:
                print(f"  Temporary password: {password}")

        if sample_content:
            existing = await session.execute(select(Religion.id).limit(1))
            if existing.first() is not None:
                print("  Religions already present, skipping sample content")
            else:
                for entry in SAMPLE_CONTENT:
                    religion = await create_religion(
                        session, entry["name"], entry["name_en"], color=entry["color"]
                    )
                    for title, title_en in entry["topics"]:
                        await create_topic(session, religion.id, title, title_en)
                print(f"✓ Created {len(SAMPLE_CONTENT)} sample religions")

        await session.commit()

    await engine.dispose()


def main():
    parser = argparse.ArgumentParser(description="Seed the Melhik CMS content store")
    parser.add_argument("--admin-username", default="admin")
    parser.add_argument("--admin-password", default=None)
    parser.add_argument("--sample-content", action="store_true")
    args = parser.parse_args()

    asyncio.run(seed(args.admin_username, args.admin_password, args.sample_content))


if __name__ == "__main__":
    main()
