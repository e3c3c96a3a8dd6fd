"""
CRM - Statuts (service + routes /api/statuses)
Run: cd backend && pytest tests/test_statuses.py -v
"""

import pytest

from services.contact_lifecycle import create_contact
from services.duplicate_resolver import DUPLICATE_STATUS_NAME, get_or_create_duplicate_status
from services.errors import NotFoundError, StatusValidationError
from services.statuses import create_status, delete_status, list_statuses, update_status


class TestService:
    def test_order_appended(self, mongo):
        first = mongo.run(create_status("Nouveau", "#3B82F6"))
        second = mongo.run(create_status("Rappel", "#F59E0B"))
        pinned = mongo.run(create_status("Signé", "#10B981", order=50))
        assert first["order"] == 0
        assert second["order"] == 1
        assert pinned["order"] == 50
        assert [s["name"] for s in mongo.run(list_statuses())] == ["Nouveau", "Rappel", "Signé"]

    def test_name_unique_and_required(self, mongo):
        mongo.run(create_status("Nouveau", "#3B82F6"))
        with pytest.raises(StatusValidationError):
            mongo.run(create_status("Nouveau", "#000000"))
        with pytest.raises(StatusValidationError):
            mongo.run(create_status("  ", "#000000"))

    def test_update(self, mongo):
        status = mongo.run(create_status("Nouveau", "#3B82F6"))
        other = mongo.run(create_status("Rappel", "#F59E0B"))
        updated = mongo.run(update_status(status["id"], color="#111111", order=7))
        assert updated["color"] == "#111111"
        assert updated["order"] == 7
        with pytest.raises(StatusValidationError):
            mongo.run(update_status(other["id"], name="Nouveau"))
        with pytest.raises(NotFoundError):
            mongo.run(update_status("nope", name="X"))

    def test_delete_clears_contacts(self, mongo):
        user = mongo.create_user()
        status = mongo.run(create_status("Nouveau", "#3B82F6"))
        contact, _ = mongo.run(create_contact(
            {"first_name": "Jean", "phone": "0600000000", "status_id": status["id"]}, user["id"]
        ))
        assert mongo.run(delete_status(status["id"])) == 1
        stored = mongo.run(mongo.db.contacts.find_one({"id": contact["id"]}))
        assert stored["status_id"] is None
        assert mongo.run(list_statuses()) == []

    def test_deleted_duplicate_status_is_recreated(self, mongo):
        doublon = mongo.run(get_or_create_duplicate_status())
        mongo.run(delete_status(doublon["id"]))
        again = mongo.run(get_or_create_duplicate_status())
        assert again["name"] == DUPLICATE_STATUS_NAME
        assert again["id"] != doublon["id"]


class TestStatusesApi:
    def test_manage_requires_permission(self, mongo):
        manager = mongo.create_user(role="MANAGER", profile="MANAGER")
        r = mongo.api("POST", "/api/statuses", headers=manager["headers"], json={"name": "X", "color": "#000"})
        assert r.status_code == 403
        assert r.json()["detail"] == "Permission requise: settings.status.manage"
        # lecture ouverte à tout utilisateur connecté
        assert mongo.api("GET", "/api/statuses", headers=manager["headers"]).status_code == 200

    def test_crud(self, mongo):
        admin = mongo.create_user()
        r = mongo.api("POST", "/api/statuses", headers=admin["headers"], json={"name": "Nouveau", "color": "#3B82F6"})
        assert r.status_code == 200, r.text
        status_id = r.json()["status"]["id"]

        dup = mongo.api("POST", "/api/statuses", headers=admin["headers"], json={"name": "Nouveau", "color": "#000"})
        assert dup.status_code == 400
        assert dup.json()["detail"] == "Un statut avec ce nom existe déjà"

        missing_color = mongo.api("POST", "/api/statuses", headers=admin["headers"], json={"name": "Rappel"})
        assert missing_color.status_code == 422

        r = mongo.api("PUT", f"/api/statuses/{status_id}", headers=admin["headers"], json={"name": "Nouveau lead"})
        assert r.json()["status"]["name"] == "Nouveau lead"

        r = mongo.api("DELETE", f"/api/statuses/{status_id}", headers=admin["headers"])
        assert r.json() == {"success": True, "contacts_cleared": 0}
        assert mongo.api("DELETE", f"/api/statuses/{status_id}", headers=admin["headers"]).status_code == 404
