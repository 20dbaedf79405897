# whatsapp_handler.py
import os
import logging
from typing import Dict, Optional
from urllib.parse import quote

import requests
import phonenumbers
from phonenumbers import PhoneNumberFormat

logger = logging.getLogger(__name__)


class WhatsAppHandler:
    def __init__(self, token: Optional[str] = None, phone_number_id: Optional[str] = None,
                 center_name: Optional[str] = None, default_region: str = "IN"):
        self.token = token if token is not None else os.environ.get("WHATSAPP_TOKEN", "")
        self.phone_number_id = phone_number_id if phone_number_id is not None \
            else os.environ.get("WHATSAPP_PHONE_ID", "")
        self.center_name = center_name or os.environ.get("CENTER_NAME", "Milk Collection Center")
        self.default_region = default_region
        self.api_version = "v18.0"
        self.base_url = f"https://graph.facebook.com/{self.api_version}"
        self.timeout = 10

    def is_configured(self) -> bool:
        """Check if the WhatsApp Cloud API is configured"""
        return bool(self.token and self.phone_number_id)

    def format_phone_number(self, phone_number: str) -> str:
        """Format phone number to E.164, India by default. Unparsable input comes back stripped."""
        raw = str(phone_number or "").strip()
        try:
            parsed = phonenumbers.parse(raw, self.default_region)
            return phonenumbers.format_number(parsed, PhoneNumberFormat.E164)
        except phonenumbers.NumberParseException as e:
            logger.warning(f"Could not parse phone number {raw!r}: {e}")
            return raw

    def deep_link(self, phone_number: str, message: str) -> str:
        """wa.me link that opens a chat with the message pre-filled"""
        digits = self.format_phone_number(phone_number).lstrip('+')
        return f"https://wa.me/{digits}?text={quote(message)}"

    def collection_receipt(self, entry, farmer_name: Optional[str] = None) -> str:
        """Receipt text for a single collection entry"""
        session = '🌅 Morning' if entry.session.value == 'morning' else '🌙 Evening'
        return f"""🥛 Milk Collection Receipt

Dear {farmer_name or entry.farmer_name},

Date: {entry.date.strftime('%d/%m/%Y')}
Session: {session}

Fat: {entry.fat_percentage}%
Quantity: {entry.quantity_liters} L
Rate: ₹{entry.rate_per_liter}/L
Total: ₹{entry.total_amount:.2f}

Thank you for your supply!
- {self.center_name}"""

    def statement_message(self, statement) -> str:
        """Summary text for a monthly statement"""
        return f"""📊 Monthly Milk Statement

Dear {statement.farmer_name},

Month: {statement.month_name} {statement.year}

Summary:
• Total Quantity: {statement.total_quantity:.1f} L
• Average Fat: {statement.average_fat:.2f}%
• Total Amount: ₹{statement.total_amount:.2f}

Thank you for your continued supply!
- {self.center_name}"""

    def send_message(self, to_number: str, message: str) -> Dict:
        """
        Send a WhatsApp text message using the Facebook Graph API

        Args:
            to_number: Recipient phone number
            message: Text body

        Returns:
            dict with "success" and either "message_id" or "error"
        """
        if not self.is_configured():
            return {
                "success": False,
                "error": "WhatsApp not configured. Set WHATSAPP_TOKEN and WHATSAPP_PHONE_ID in environment variables.",
            }

        to_number = self.format_phone_number(to_number)
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json"
        }
        data = {
            "messaging_product": "whatsapp",
            "to": to_number.lstrip('+'),
            "type": "text",
            "text": {"body": message}
        }
        url = f"{self.base_url}/{self.phone_number_id}/messages"

        try:
            response = requests.post(url, headers=headers, json=data, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Exception sending WhatsApp to {to_number}: {e}")
            return {"success": False, "error": str(e)}

        try:
            response_data = response.json()
        except ValueError:
            response_data = {}

        if response.status_code == 200:
            logger.info(f"Message sent to {to_number}: {response_data}")
            return {
                "success": True,
                "message_id": response_data.get("messages", [{}])[0].get("id"),
                "to": to_number
            }

        logger.error(f"Failed to send message to {to_number}: {response.status_code} - {response_data}")
        return {
            "success": False,
            "error": f"API Error {response.status_code}: "
                     f"{response_data.get('error', {}).get('message', 'Unknown error')}",
        }

    def notify(self, phone_number: Optional[str], message: str) -> Dict:
        """Send through the API when configured; always hand back the deep link."""
        if not phone_number:
            return {"success": False, "error": "No phone number on record"}

        result = {"whatsapp_url": self.deep_link(phone_number, message), "message": message}
        if self.is_configured():
            result.update(self.send_message(phone_number, message))
            result["sent"] = bool(result.get("success"))
        else:
            result.update({"success": True, "sent": False})
        return result
