"""
CRM - Cycle de vie des contacts
Création (repli des doublons, course concurrente), mise à jour journalisée,
suppression, listes paginées.
Run: cd backend && pytest tests/test_contact_lifecycle.py -v
"""

import uuid

import pytest

from config import now_iso
from services import contact_lifecycle
from services.contact_lifecycle import (
    create_contact,
    delete_contact,
    get_contact,
    list_contacts,
    update_contact,
)
from services.errors import ContactValidationError, NotFoundError

JEAN = {"first_name": "Jean", "last_name": "Dupont", "email": "jean@x.com", "phone": "0600000000"}


def _types(mongo, contact_id):
    docs = mongo.run(mongo.db.interactions.find({"contact_id": contact_id}, {"_id": 0}).to_list(100))
    return sorted(d["type"] for d in docs)


class TestCreate:
    def test_phone_required(self, mongo):
        user = mongo.create_user()
        with pytest.raises(ContactValidationError):
            mongo.run(create_contact({"first_name": "Jean", "phone": "  "}, user["id"]))

    def test_defaults(self, mongo):
        user = mongo.create_user()
        contact, duplicate = mongo.run(create_contact(dict(JEAN, city=""), user["id"]))
        assert duplicate is False
        assert contact["assigned_commercial_id"] == user["id"]
        assert contact["created_by_id"] == user["id"]
        assert contact["city"] is None
        assert contact["identity_key"] == "jean|dupont|jean@x.com"
        assert "_id" not in contact

        note = mongo.run(mongo.db.interactions.find_one({"contact_id": contact["id"]}))
        assert note["title"] == "Contact créé"

    def test_telepro_assignment_skips_creator_default(self, mongo):
        user = mongo.create_user()
        telepro = mongo.create_user(role="TELEPRO", profile="TELEPRO")
        contact, _ = mongo.run(create_contact(dict(JEAN, assigned_telepro_id=telepro["id"]), user["id"]))
        assert contact["assigned_telepro_id"] == telepro["id"]
        assert contact["assigned_commercial_id"] is None

    def test_incomplete_identities_coexist(self, mongo):
        """Sans email: pas de clé, donc pas de contrainte d'unicité"""
        user = mongo.create_user()
        a, _ = mongo.run(create_contact({"first_name": "Jean", "last_name": "Dupont", "phone": "1"}, user["id"]))
        b, dup = mongo.run(create_contact({"first_name": "Jean", "last_name": "Dupont", "phone": "2"}, user["id"]))
        assert dup is False
        assert a["id"] != b["id"]
        stored = mongo.run(mongo.db.contacts.find_one({"id": a["id"]}))
        assert "identity_key" not in stored

    def test_concurrent_insert_folds(self, mongo, monkeypatch):
        """La vérification passe, puis une autre requête insère la même identité"""
        user = mongo.create_user()
        existing_id = str(uuid.uuid4())
        mongo.run(mongo.db.contacts.insert_one({
            "id": existing_id, **JEAN,
            "identity_key": "jean|dupont|jean@x.com",
            "created_at": now_iso(), "updated_at": now_iso(),
        }))

        real_resolve = contact_lifecycle.resolve_duplicate
        calls = []

        async def late_resolve(*args):
            calls.append(args)
            if len(calls) == 1:
                return None
            return await real_resolve(*args)

        monkeypatch.setattr(contact_lifecycle, "resolve_duplicate", late_resolve)

        contact, duplicate = mongo.run(create_contact(dict(JEAN), user["id"]))
        assert duplicate is True
        assert contact["id"] == existing_id
        assert len(calls) == 2
        assert mongo.run(mongo.db.contacts.count_documents({})) == 1

    def test_audit_failure_does_not_block_creation(self, mongo, monkeypatch):
        async def broken(**kwargs):
            raise RuntimeError("journal indisponible")

        monkeypatch.setattr(contact_lifecycle, "create_interaction", broken)
        user = mongo.create_user()
        contact, duplicate = mongo.run(create_contact(dict(JEAN), user["id"]))
        assert duplicate is False
        assert mongo.run(mongo.db.contacts.count_documents({"id": contact["id"]})) == 1
        assert mongo.run(mongo.db.interactions.count_documents({})) == 0


class TestUpdate:
    def test_real_changes_are_logged(self, mongo):
        user = mongo.create_user(name="Alice")
        other = mongo.create_user(role="TELEPRO", profile="TELEPRO", name="Bob")
        status_id = str(uuid.uuid4())
        mongo.run(mongo.db.statuses.insert_one({"id": status_id, "name": "Rappel", "order": 1}))
        contact, _ = mongo.run(create_contact(dict(JEAN), user["id"]))

        updated = mongo.run(update_contact(contact["id"], {
            **contact,
            "city": "Lyon",
            "status_id": status_id,
            "assigned_telepro_id": other["id"],
        }, user["id"]))

        assert updated["city"] == "Lyon"
        assert _types(mongo, contact["id"]) == [
            "ASSIGNMENT_CHANGE", "CONTACT_UPDATE", "NOTE", "STATUS_CHANGE"
        ]
        status_log = mongo.run(mongo.db.interactions.find_one({"type": "STATUS_CHANGE"}))
        assert status_log["content"] == 'Statut modifié de "Aucun" à "Rappel"'
        assignment = mongo.run(mongo.db.interactions.find_one({"type": "ASSIGNMENT_CHANGE"}))
        assert assignment["content"] == 'Télépro modifié de "Non attribué" à "Bob"'

    def test_identical_update_logs_nothing(self, mongo):
        user = mongo.create_user()
        contact, _ = mongo.run(create_contact(dict(JEAN), user["id"]))
        mongo.run(update_contact(contact["id"], dict(contact), user["id"]))
        assert _types(mongo, contact["id"]) == ["NOTE"]

    def test_identity_collision_rejected(self, mongo):
        user = mongo.create_user()
        mongo.run(create_contact(dict(JEAN), user["id"]))
        paul, _ = mongo.run(create_contact(
            {"first_name": "Paul", "last_name": "Martin", "email": "paul@x.com", "phone": "0700000000"},
            user["id"],
        ))
        with pytest.raises(ContactValidationError):
            mongo.run(update_contact(paul["id"], {**paul, "first_name": "jean", "last_name": "DUPONT",
                                                  "email": "Jean@x.com"}, user["id"]))

    def test_removing_email_drops_identity_key(self, mongo):
        user = mongo.create_user()
        contact, _ = mongo.run(create_contact(dict(JEAN), user["id"]))
        mongo.run(update_contact(contact["id"], {**contact, "email": None}, user["id"]))
        stored = mongo.run(mongo.db.contacts.find_one({"id": contact["id"]}))
        assert "identity_key" not in stored

    def test_unknown_contact(self, mongo):
        user = mongo.create_user()
        with pytest.raises(NotFoundError):
            mongo.run(update_contact("ghost", dict(JEAN), user["id"]))


class TestDeleteAndRead:
    def test_delete_keeps_interactions(self, mongo):
        user = mongo.create_user()
        contact, _ = mongo.run(create_contact(dict(JEAN), user["id"]))
        mongo.run(delete_contact(contact["id"], user["id"]))
        assert mongo.run(mongo.db.contacts.count_documents({})) == 0
        assert mongo.run(mongo.db.interactions.count_documents({"contact_id": contact["id"]})) == 1
        with pytest.raises(NotFoundError):
            mongo.run(get_contact(contact["id"]))

    def test_get_contact_includes_interactions(self, mongo):
        user = mongo.create_user()
        contact, _ = mongo.run(create_contact(dict(JEAN), user["id"]))
        full = mongo.run(get_contact(contact["id"]))
        assert len(full["interactions"]) == 1

    def test_list_sorted_and_paginated(self, mongo):
        user = mongo.create_user()
        ids = []
        for i in range(5):
            c, _ = mongo.run(create_contact(
                {"first_name": f"P{i}", "last_name": "Test", "email": f"p{i}@x.com", "phone": f"06{i}"},
                user["id"],
            ))
            ids.append(c["id"])
        # un doublon replié remonte en tête
        mongo.run(create_contact({"first_name": "P0", "last_name": "Test", "email": "p0@x.com", "phone": "x"},
                                 user["id"]))

        page = mongo.run(list_contacts(page=1, limit=2))
        assert page["pagination"] == {"page": 1, "limit": 2, "total": 5, "total_pages": 3}
        assert page["contacts"][0]["id"] == ids[0]
        assert "identity_key" not in page["contacts"][0]

    def test_search_is_case_insensitive(self, mongo):
        user = mongo.create_user()
        mongo.run(create_contact(dict(JEAN), user["id"]))
        assert mongo.run(list_contacts(search="DUP"))["pagination"]["total"] == 1
        assert mongo.run(list_contacts(search="a.b"))["pagination"]["total"] == 0
