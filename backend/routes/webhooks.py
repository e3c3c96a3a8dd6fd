"""
CRM - Webhooks leads entrants (publics, sans session)

- Google Ads: clé partagée (googleKey) comparée à la config active
- Meta Lead Ads: vérification hub.verify_token (GET) puis notifications leadgen (POST)

Un lead mal formé est ignoré avec {"received": true}: les plateformes
rejouent en boucle tout ce qui n'est pas un 2xx.
"""

from fastapi import APIRouter, HTTPException, Request, Query
from fastapi.responses import PlainTextResponse
from typing import Optional
import logging

import httpx

from services.lead_ingestion import (
    SOURCE_GOOGLE_ADS,
    SOURCE_META,
    fetch_meta_lead,
    get_active_configs,
    ingest_lead,
    parse_google_ads_lead,
    parse_meta_lead,
)

logger = logging.getLogger("webhooks")

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


# ==================== GOOGLE ADS ====================

@router.post("/google-ads")
async def google_ads_webhook(request: Request):
    body = await request.json()
    notification = body.get("leadNotification") if isinstance(body, dict) else None

    if not notification or not notification.get("googleKey"):
        logger.warning("[WEBHOOK] Google Ads: format inattendu")
        return {"received": True}

    configs = await get_active_configs(SOURCE_GOOGLE_ADS)
    if not configs:
        logger.warning("[WEBHOOK] Google Ads: aucune configuration active")
        return {"received": True}

    config = configs[0]
    if notification["googleKey"] != config.get("webhook_key"):
        logger.warning("[WEBHOOK] Google Ads: clé invalide")
        raise HTTPException(status_code=403, detail="Clé invalide")

    lead = parse_google_ads_lead(notification)
    result = await ingest_lead(
        lead,
        config,
        origin="Google Ads",
        note_title="Lead Google Ads",
        note_content=(
            "Lead importé automatiquement depuis Google Ads "
            f"(client: {notification.get('customerId') or 'inconnu'})."
        ),
    )
    return {"received": True, "result": result}


# ==================== META LEAD ADS ====================

@router.get("/meta-leads")
async def meta_leads_verify(
    hub_mode: Optional[str] = Query(None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(None, alias="hub.challenge"),
):
    """Abonnement du webhook: renvoie hub.challenge si le token correspond"""
    if hub_mode != "subscribe" or not hub_verify_token or not hub_challenge:
        raise HTTPException(status_code=400, detail="Requête invalide")

    configs = await get_active_configs(SOURCE_META)
    if not any(c.get("verify_token") == hub_verify_token for c in configs):
        raise HTTPException(status_code=403, detail="Token de vérification invalide")

    return PlainTextResponse(hub_challenge)


@router.post("/meta-leads")
async def meta_leads_webhook(request: Request):
    body = await request.json()
    if not isinstance(body, dict) or body.get("object") != "page" or not isinstance(body.get("entry"), list):
        return {"received": True}

    configs = await get_active_configs(SOURCE_META)
    if not configs:
        logger.warning("[WEBHOOK] Meta: aucune configuration active")
        return {"received": True}

    results = []
    for entry in body["entry"]:
        for change in entry.get("changes") or []:
            if change.get("field") != "leadgen":
                continue
            value = change.get("value") or {}
            lead_id = value.get("leadgen_id")
            page_id = value.get("page_id")

            config = next((c for c in configs if c.get("page_id") == page_id), None)
            if not config:
                logger.warning(f"[WEBHOOK] Meta: aucune configuration pour la page {page_id}")
                continue

            try:
                field_data = await fetch_meta_lead(lead_id, config.get("access_token"))
            except httpx.HTTPError as e:
                logger.error(f"[WEBHOOK] Meta: lead {lead_id} non récupéré: {e}")
                continue

            origin = f"Meta Lead Ads - {config.get('name')}"
            result = await ingest_lead(
                parse_meta_lead(field_data, lead_id),
                config,
                origin=origin,
                note_title=f"Lead {origin}",
                note_content=(
                    f"Lead importé automatiquement depuis Meta Lead Ads "
                    f"({config.get('name')}, formulaire: {value.get('form_id')})."
                ),
            )
            if result:
                results.append(result)

    return {"received": True, "processed": len(results)}
