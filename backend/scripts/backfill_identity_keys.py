"""
CRM - Migration: calcule identity_key sur les contacts existants.
Run (dry-run): cd backend && python3 scripts/backfill_identity_keys.py
Apply:         cd backend && python3 scripts/backfill_identity_keys.py --apply

Deux contacts complets avec la même identité bloqueraient l'index unique:
ils sont listés et laissés sans clé, à fusionner à la main.
"""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config import client, db
from services.duplicate_resolver import build_identity_key


async def backfill(apply: bool = False):
    total = await db.contacts.count_documents({})
    print(f"Total contacts in DB: {total}")

    seen = {}
    to_set = []
    to_unset = []
    conflicts = []
    incomplete = 0

    cursor = db.contacts.find(
        {},
        {"_id": 0, "id": 1, "first_name": 1, "last_name": 1, "email": 1,
         "identity_key": 1, "created_at": 1}
    ).sort("created_at", 1)

    async for contact in cursor:
        key = build_identity_key(contact.get("first_name"), contact.get("last_name"), contact.get("email"))
        if key is None:
            incomplete += 1
            if contact.get("identity_key"):
                to_unset.append(contact["id"])
            continue

        if key in seen:
            # le plus ancien garde la clé
            conflicts.append({"id": contact["id"], "kept": seen[key], "key": key})
            if contact.get("identity_key"):
                to_unset.append(contact["id"])
            continue
        seen[key] = contact["id"]

        if contact.get("identity_key") != key:
            to_set.append((contact["id"], key))

    if apply:
        for contact_id in to_unset:
            await db.contacts.update_one({"id": contact_id}, {"$unset": {"identity_key": ""}})
        for contact_id, key in to_set:
            await db.contacts.update_one({"id": contact_id}, {"$set": {"identity_key": key}})

    client.close()

    print("\n════════════════════════════════════")
    print(f"  BACKFILL REPORT {'(APPLIED)' if apply else '(DRY-RUN)'}")
    print("════════════════════════════════════")
    print(f"  Total contacts:   {total}")
    print(f"  Keys to set:      {len(to_set)}")
    print(f"  Keys to unset:    {len(to_unset)}")
    print(f"  Incomplete:       {incomplete}")
    print(f"  Conflicts:        {len(conflicts)}")
    print("════════════════════════════════════")

    if conflicts:
        print("\nIdentités en double (à fusionner):")
        for c in conflicts[:50]:
            print(f"  contact={c['id'][:8]}... kept={c['kept'][:8]}... key={c['key']}")

    return {
        "total": total,
        "set": len(to_set),
        "unset": len(to_unset),
        "incomplete": incomplete,
        "conflicts": len(conflicts),
    }


if __name__ == "__main__":
    asyncio.run(backfill(apply="--apply" in sys.argv))
