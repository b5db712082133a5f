import logging

from django.utils import timezone

from .models import Conversation

logger = logging.getLogger(__name__)


class ConversationLinker:
    """Marks the chat conversation that produced a booking as resolved."""

    def resolve(self, conversation_id, patient, when=None):
        updated = Conversation.objects.filter(pk=conversation_id).update(
            status=Conversation.BOOKING_COMPLETE,
            patient=patient,
            patient_phone=patient.phone,
            resolved_at=when or timezone.now(),
        )
        if not updated:
            logger.warning("Conversation %s not found, booking left unlinked", conversation_id)
            return False
        return True
