"""
whatsapp_bridge/utils/constants.py

Purpose: Centralized static content

- Customer-facing WhatsApp messages
- Operator-facing HTTP response texts
- Protocol constants (JID suffix)

(Prevents hardcoding across the codebase)
"""

# ============================================================
# PROTOCOL
# ============================================================

JID_SUFFIX = "@s.whatsapp.net"

# Upsert batches of this type replay history and are never answered
HISTORY_UPSERT_TYPE = "append"

# ============================================================
# CUSTOMER MESSAGES
# ============================================================

ONBOARDING_MESSAGE = (
    "👋 Bonjour ! Pour commencer, cliquez d’abord sur un lien d’annonce "
    "afin d’associer votre demande à un produit."
)

# ============================================================
# HTTP RESPONSES
# ============================================================

ALREADY_CONNECTED_TEXT = "✅ Session WhatsApp déjà active pour ecommercant {merchant_id}"
CONNECT_STARTED_TEXT = "QR généré pour ecommercant {merchant_id}"
QR_NOT_READY_TEXT = "QR code non prêt pour cet ecommercant."
NO_ACTIVE_SESSION_TEXT = "Session WhatsApp non active"
SEND_FAILED_TEXT = "❌ WhatsApp timeout — numéro peut-être invalide ou déconnecté"
MESSAGE_SENT_TEXT = "✅ Message envoyé"
SESSION_DISCONNECTED_TEXT = "Session déconnectée"
NO_SESSION_FOR_ID_TEXT = "Aucune session active pour cet id"
CONTEXT_CLEARED_TEXT = "Contexte de conversation supprimé"
NO_CONTEXT_FOR_PHONE_TEXT = "Aucun contexte de conversation pour ce numéro"

QR_PAGE_TEMPLATE = """
    <html>
      <body>
        <h2>QR WhatsApp pour ecommercant {merchant_id}</h2>
        <img src="{qr_data_url}" alt="QR Code WhatsApp"/>
      </body>
    </html>
"""
