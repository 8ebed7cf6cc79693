import mongomock
import pytest
from fastapi.testclient import TestClient

from voting_portal.cache import read_cache
from voting_portal.crud import create_voter_account
from voting_portal.database.connection import MongoConnector
from voting_portal.schemas import VoterCreate
from voting_portal.security import create_access_token
from voting_portal.storage_mongo import new_id, storage


@pytest.fixture
def db():
    connector = MongoConnector.bind(mongomock.MongoClient(), "voting_portal_test")
    read_cache.invalidate()
    yield connector
    MongoConnector.reset()
    read_cache.invalidate()


@pytest.fixture
def client(db):
    from voting_portal.main import app

    return TestClient(app)


def add_position(db, title, order_index, is_active=True):
    doc = {"_id": new_id(), "title": title, "description": None, "order_index": order_index, "is_active": is_active}
    db.positions.insert_one(doc)
    return doc["_id"]


def add_candidate(db, position_id, first_name, last_name, vote_count=0):
    doc = {
        "_id": new_id(),
        "position_id": position_id,
        "first_name": first_name,
        "last_name": last_name,
        "platform": None,
        "photo_url": None,
        "vote_count": vote_count,
        "is_active": True,
    }
    db.candidates.insert_one(doc)
    return doc["_id"]


def add_voter(db, email, is_admin=False):
    doc = {
        "_id": new_id(),
        "user_id": new_id(),
        "email": email,
        "first_name": email.split("@")[0].title(),
        "last_name": "Member",
        "member_id": None,
        "is_admin": is_admin,
    }
    db.voters.insert_one(doc)
    return doc["_id"]


def set_voting_open(is_open=True):
    storage.save_settings({"is_voting_open": is_open}, updated_by="tests")


def auth_header(profile):
    token = create_access_token({"sub": profile.user_id, "email": profile.email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin(db):
    return create_voter_account(
        VoterCreate(email="admin@chapter.org", password="admin-pass", first_name="Ada", last_name="Admin"),
        is_admin=True,
    )


@pytest.fixture
def voter(db):
    return create_voter_account(
        VoterCreate(email="juan@chapter.org", password="voter-pass", first_name="Juan", last_name="Cruz", member_id="M-001")
    )


@pytest.fixture
def ballot(db):
    """Two positions: President (one candidate) and Treasurer (two candidates)."""
    president = add_position(db, "President", 1)
    treasurer = add_position(db, "Treasurer", 5)
    return {
        "president": president,
        "treasurer": treasurer,
        "aileen": add_candidate(db, president, "Aileen", "Lopez"),
        "mairie": add_candidate(db, treasurer, "Mairie", "Garalde"),
        "evelyn": add_candidate(db, treasurer, "Evelyn", "Lee"),
    }
