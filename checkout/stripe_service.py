import stripe
import structlog

logger = structlog.get_logger(__name__)

# Display text for Stripe error codes. Raw processor messages stay in the logs.
CARD_ERROR_MESSAGES = {
    "card_declined": "Your card was declined",
    "expired_card": "Your card is expired",
    "incorrect_cvc": "Incorrect CVC code",
    "incorrect_zip": "Incorrect zip/postal code",
    "amount_too_large": "The amount is too large to charge to your card",
    "amount_too_small": "The amount is too small to charge to your card",
    "balance_insufficient": "Insufficient balance",
    "postal_code_invalid": "Your postal code is invalid",
}
DEFAULT_CARD_ERROR = "Your card was declined"


class PaymentGatewayError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PaymentDeclined(PaymentGatewayError):
    """The processor rejected the request (amount, currency, card, credentials)."""


class PaymentProcessorUnavailable(PaymentGatewayError):
    """The processor could not be reached."""
    status_code = 500


def card_error_message(code) -> str:
    return CARD_ERROR_MESSAGES.get(code, DEFAULT_CARD_ERROR)


class Card:
    """Payment intents against one Stripe account, bounded by ``timeout`` seconds."""

    def __init__(self, secret: str, timeout: float = 10.0):
        self.secret = secret
        self.client = None
        if secret:
            self.client = stripe.StripeClient(
                secret,
                http_client=stripe.RequestsClient(timeout=timeout),
                max_network_retries=0,
            )

    def create_payment_intent(self, currency: str, amount: int):
        try:
            return self.client.v1.payment_intents.create(
                params={"amount": amount, "currency": currency},
            )
        except stripe.APIConnectionError as e:
            logger.error("stripe_unreachable", error=str(e))
            raise PaymentProcessorUnavailable(
                "Unable to reach the payment processor. Please try again later."
            ) from e
        except stripe.StripeError as e:
            logger.error("stripe_rejected", code=e.code, error=str(e))
            raise PaymentDeclined(card_error_message(e.code)) from e
