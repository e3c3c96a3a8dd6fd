"""
CRM - Routes HTTP (auth, contacts, profils, statuts, webhooks)
Run: cd backend && pytest tests/test_api_routes.py -v
"""

from tests.conftest import TEST_PASSWORD

CONTACT = {"first_name": "Jean", "last_name": "Dupont", "email": "jean@x.com", "phone": "0600000000"}


class TestAuth:
    def test_login_me_logout(self, mongo):
        user = mongo.create_user(role="COMMERCIAL", profile="COMMERCIAL", email="alice@test.local")
        r = mongo.api("POST", "/api/auth/login", json={"email": "ALICE@test.local", "password": TEST_PASSWORD})
        assert r.status_code == 200, r.text
        token = r.json()["token"]
        assert "contacts.view_own" in r.json()["user"]["permissions"]

        headers = {"Authorization": f"Bearer {token}"}
        me = mongo.api("GET", "/api/auth/me", headers=headers)
        assert me.status_code == 200
        assert me.json()["id"] == user["id"]
        assert me.json()["profile_name"] == "Commercial"
        assert "password" not in me.json()

        assert mongo.api("POST", "/api/auth/logout", headers=headers).status_code == 200
        assert mongo.api("GET", "/api/auth/me", headers=headers).status_code == 401

    def test_bad_password(self, mongo):
        mongo.create_user(email="bob@test.local")
        r = mongo.api("POST", "/api/auth/login", json={"email": "bob@test.local", "password": "nope"})
        assert r.status_code == 401

    def test_no_token(self, mongo):
        r = mongo.api("GET", "/api/contacts")
        assert r.status_code == 401
        assert r.json()["detail"] == "Non authentifié"

    def test_disabled_account(self, mongo):
        user = mongo.create_user(active=False)
        assert mongo.api("GET", "/api/auth/me", headers=user["headers"]).status_code == 403


class TestContactsApi:
    def test_create_then_duplicate(self, mongo):
        user = mongo.create_user()
        r = mongo.api("POST", "/api/contacts", json=CONTACT, headers=user["headers"])
        assert r.status_code == 200, r.text
        assert r.json()["duplicate"] is False
        assert "identity_key" not in r.json()["contact"]

        again = mongo.api("POST", "/api/contacts", headers=user["headers"],
                          json={**CONTACT, "first_name": "JEAN", "phone": "0611111111"})
        assert again.json()["duplicate"] is True
        assert again.json()["contact"]["id"] == r.json()["contact"]["id"]

    def test_phone_required(self, mongo):
        user = mongo.create_user()
        r = mongo.api("POST", "/api/contacts", json={**CONTACT, "phone": " "}, headers=user["headers"])
        assert r.status_code == 422

    def test_no_profile_is_forbidden(self, mongo):
        user = mongo.create_user(role="ADMIN", profile=None)
        r = mongo.api("POST", "/api/contacts", json=CONTACT, headers=user["headers"])
        assert r.status_code == 403
        assert r.json()["detail"] == "Permission requise: contacts.create"

    def test_telepro_visibility(self, mongo):
        admin = mongo.create_user()
        telepro = mongo.create_user(role="TELEPRO", profile="TELEPRO")
        created = mongo.api("POST", "/api/contacts", json=CONTACT, headers=admin["headers"]).json()["contact"]

        # attribué à l'admin: invisible pour le télépro
        listing = mongo.api("GET", "/api/contacts", headers=telepro["headers"]).json()
        assert listing["pagination"]["total"] == 0
        assert mongo.api("GET", f"/api/contacts/{created['id']}", headers=telepro["headers"]).status_code == 404

        own = mongo.api("POST", "/api/contacts", headers=telepro["headers"], json={
            "first_name": "Paul", "last_name": "Martin", "email": "paul@x.com", "phone": "0700000000",
        }).json()["contact"]
        listing = mongo.api("GET", "/api/contacts", headers=telepro["headers"]).json()
        assert [c["id"] for c in listing["contacts"]] == [own["id"]]

        assert mongo.api("DELETE", f"/api/contacts/{own['id']}", headers=telepro["headers"]).status_code == 403

    def test_update_and_interactions(self, mongo):
        user = mongo.create_user()
        contact = mongo.api("POST", "/api/contacts", json=CONTACT, headers=user["headers"]).json()["contact"]
        r = mongo.api("PUT", f"/api/contacts/{contact['id']}", headers=user["headers"],
                      json={**CONTACT, "city": "Lyon", "assigned_commercial_id": user["id"]})
        assert r.status_code == 200, r.text
        assert r.json()["contact"]["city"] == "Lyon"

        r = mongo.api("POST", f"/api/contacts/{contact['id']}/interactions", headers=user["headers"],
                      json={"type": "CALL", "content": "Appel de qualification"})
        assert r.status_code == 200, r.text

        r = mongo.api("POST", f"/api/contacts/{contact['id']}/interactions", headers=user["headers"],
                      json={"type": "STATUS_CHANGE", "content": "forcé"})
        assert r.status_code == 400

        listing = mongo.api("GET", f"/api/contacts/{contact['id']}/interactions", headers=user["headers"]).json()
        assert sorted(i["type"] for i in listing["interactions"]) == ["CALL", "CONTACT_UPDATE", "NOTE"]

    def test_update_collision_is_400(self, mongo):
        user = mongo.create_user()
        mongo.api("POST", "/api/contacts", json=CONTACT, headers=user["headers"])
        paul = mongo.api("POST", "/api/contacts", headers=user["headers"], json={
            "first_name": "Paul", "last_name": "Martin", "email": "paul@x.com", "phone": "0700000000",
        }).json()["contact"]
        r = mongo.api("PUT", f"/api/contacts/{paul['id']}", json=CONTACT, headers=user["headers"])
        assert r.status_code == 400

    def test_unknown_contact(self, mongo):
        user = mongo.create_user()
        r = mongo.api("GET", "/api/contacts/ghost", headers=user["headers"])
        assert r.status_code == 404
        assert r.json()["detail"] == "Contact non trouvé"


class TestRolesApi:
    def test_catalogue(self, mongo):
        admin = mongo.create_user()
        r = mongo.api("GET", "/api/roles/permissions", headers=admin["headers"])
        assert r.status_code == 200
        body = r.json()
        assert body["count"] == 44
        assert body["categories"][0]["key"] == "ANALYTICS"
        assert sum(len(c["permissions"]) for c in body["categories"]) == 44
        contacts = next(c for c in body["categories"] if c["key"] == "CONTACTS")
        assert len(contacts["permissions"]) == 12
        assert all(c["permissions"] for c in body["categories"])

    def test_requires_manage_roles(self, mongo):
        manager = mongo.create_user(role="MANAGER", profile="MANAGER")
        assert mongo.api("GET", "/api/roles", headers=manager["headers"]).status_code == 403

    def test_crud_and_guard(self, mongo):
        admin = mongo.create_user()
        r = mongo.api("POST", "/api/roles", headers=admin["headers"],
                      json={"name": "Stagiaire", "permissions": ["contacts.view_own"]})
        assert r.status_code == 200, r.text
        role_id = r.json()["role"]["id"]

        r = mongo.api("POST", "/api/roles", headers=admin["headers"], json={"name": "X", "permissions": ["nope"]})
        assert r.status_code == 400

        r = mongo.api("PUT", f"/api/roles/{role_id}", headers=admin["headers"], json={"description": "Junior"})
        assert r.json()["role"]["description"] == "Junior"

        r = mongo.api("DELETE", f"/api/roles/{mongo.role_ids['ADMIN']}", headers=admin["headers"])
        assert r.status_code == 400
        assert "1 utilisateur(s)" in r.json()["detail"]

        assert mongo.api("DELETE", f"/api/roles/{role_id}", headers=admin["headers"]).status_code == 200
        assert mongo.api("DELETE", f"/api/roles/{role_id}", headers=admin["headers"]).status_code == 404


class TestStatusesApi:
    def test_sorted_by_order(self, mongo):
        user = mongo.create_user()
        mongo.run(mongo.db.statuses.insert_many([
            {"id": "s2", "name": "Signé", "order": 2},
            {"id": "s1", "name": "Nouveau", "order": 1},
        ]))
        r = mongo.api("GET", "/api/statuses", headers=user["headers"])
        assert [s["id"] for s in r.json()["statuses"]] == ["s1", "s2"]


class TestWebhooks:
    def _google_config(self, mongo, **overrides):
        config = {"id": "cfg-g", "source": "google_ads", "name": "Google", "active": True, "webhook_key": "k1"}
        config.update(overrides)
        mongo.run(mongo.db.lead_source_configs.insert_one(config))

    def _google_payload(self, key):
        return {"leadNotification": {
            "googleKey": key,
            "customerId": "123",
            "userColumnData": [
                {"columnName": "FULL_NAME", "stringValue": "Jean Dupont"},
                {"columnName": "EMAIL", "stringValue": "jean@x.com"},
                {"columnName": "PHONE_NUMBER", "stringValue": "0600000000"},
            ],
        }}

    def test_google_ads_bad_key(self, mongo):
        mongo.create_user()
        self._google_config(mongo)
        r = mongo.api("POST", "/api/webhooks/google-ads", json=self._google_payload("wrong"))
        assert r.status_code == 403
        assert mongo.run(mongo.db.contacts.count_documents({})) == 0

    def test_google_ads_lead(self, mongo):
        mongo.create_user()
        self._google_config(mongo)
        r = mongo.api("POST", "/api/webhooks/google-ads", json=self._google_payload("k1"))
        assert r.status_code == 200, r.text
        assert r.json()["result"]["created"] is True
        contact = mongo.run(mongo.db.contacts.find_one({}))
        assert contact["first_name"] == "Jean"
        assert contact["origin"] == "Google Ads"

    def test_google_ads_without_config(self, mongo):
        r = mongo.api("POST", "/api/webhooks/google-ads", json=self._google_payload("k1"))
        assert r.status_code == 200
        assert r.json() == {"received": True}

    def test_meta_verification(self, mongo):
        mongo.run(mongo.db.lead_source_configs.insert_one(
            {"id": "cfg-m", "source": "meta", "name": "Page", "active": True, "verify_token": "vt"}
        ))
        params = {"hub.mode": "subscribe", "hub.verify_token": "vt", "hub.challenge": "42"}
        r = mongo.api("GET", "/api/webhooks/meta-leads", params=params)
        assert r.status_code == 200
        assert r.text == "42"

        r = mongo.api("GET", "/api/webhooks/meta-leads", params={**params, "hub.verify_token": "bad"})
        assert r.status_code == 403

    def test_meta_lead(self, mongo, monkeypatch):
        mongo.create_user()
        mongo.run(mongo.db.lead_source_configs.insert_one({
            "id": "cfg-m", "source": "meta", "name": "Page PAC", "active": True,
            "page_id": "p1", "access_token": "tok",
        }))

        async def fake_fetch(lead_id, access_token):
            assert access_token == "tok"
            return [
                {"name": "first_name", "values": ["Marie"]},
                {"name": "last_name", "values": ["Curie"]},
                {"name": "phone_number", "values": ["0700000000"]},
            ]

        from routes import webhooks
        monkeypatch.setattr(webhooks, "fetch_meta_lead", fake_fetch)

        body = {"object": "page", "entry": [{"changes": [
            {"field": "leadgen", "value": {"leadgen_id": "L1", "page_id": "p1", "form_id": "F1"}},
            {"field": "leadgen", "value": {"leadgen_id": "L2", "page_id": "unknown"}},
        ]}]}
        r = mongo.api("POST", "/api/webhooks/meta-leads", json=body)
        assert r.status_code == 200, r.text
        assert r.json()["processed"] == 1

        contact = mongo.run(mongo.db.contacts.find_one({}))
        assert contact["origin"] == "Meta Lead Ads - Page PAC"
        note = mongo.run(mongo.db.interactions.find_one({"title": "Lead Meta Lead Ads - Page PAC"}))
        assert "formulaire: F1" in note["content"]
