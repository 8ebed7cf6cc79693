"""Provision an administrator login and profile.

    python -m voting_portal.create_admin admin@chapter.org 's3cret!' Admin User
"""
import argparse
import logging

from voting_portal.crud import create_voter_account
from voting_portal.errors import PortalError
from voting_portal.schemas import VoterCreate

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create an administrator account")
    parser.add_argument("email")
    parser.add_argument("password")
    parser.add_argument("first_name")
    parser.add_argument("last_name")
    parser.add_argument("--member-id", default=None)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    try:
        profile = create_voter_account(
            VoterCreate(
                email=args.email,
                password=args.password,
                first_name=args.first_name,
                last_name=args.last_name,
                member_id=args.member_id,
            ),
            is_admin=True,
        )
    except PortalError as e:
        logger.error(f"Could not create administrator {args.email}: {e}")
        return 1
    print(f"Created administrator {profile.email} (voter id {profile.id})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
