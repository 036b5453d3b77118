"""Transactional email templates (jinja2), one HTML body per template and language."""
from __future__ import annotations

from typing import Any

from jinja2 import DictLoader, Environment, TemplateNotFound, select_autoescape

TEMPLATE_NAMES: tuple[str, ...] = (
    "welcome",
    "order-confirmation",
    "order-shipped",
    "order-delivered",
    "password-reset",
    "review-request",
    "birthday-bonus",
    "loyalty-summary",
)

SUBJECTS: dict[str, dict[str, str]] = {
    "en": {
        "welcome": "Welcome to {{ storeName }}!",
        "order-confirmation": "Order confirmation #{{ orderId }}",
        "order-shipped": "Your order #{{ orderId }} has shipped",
        "order-delivered": "Your order #{{ orderId }} has been delivered",
        "password-reset": "Reset your {{ storeName }} password",
        "review-request": "How did we do? Review your order #{{ orderId }}",
        "birthday-bonus": "Happy Birthday!",
        "loyalty-summary": "Your Weekly Loyalty Summary",
    },
    "es": {
        "welcome": "¡Bienvenido a {{ storeName }}!",
        "order-confirmation": "Confirmación del pedido #{{ orderId }}",
        "order-shipped": "Tu pedido #{{ orderId }} ha sido enviado",
        "order-delivered": "Tu pedido #{{ orderId }} ha sido entregado",
        "password-reset": "Restablece tu contraseña de {{ storeName }}",
        "review-request": "¿Qué tal lo hicimos? Valora tu pedido #{{ orderId }}",
        "birthday-bonus": "¡Feliz cumpleaños!",
        "loyalty-summary": "Tu resumen semanal de fidelidad",
    },
}

_LAYOUT = """<!DOCTYPE html>
<html><body style="font-family: Arial, sans-serif; color: #333;">
{% block body %}{% endblock %}
<p style="color: #888; font-size: 12px;">&copy; {{ year }} {{ storeName }}</p>
</body></html>
"""

_ITEMS = """<table cellpadding="4">
{% for item in items %}<tr><td>{{ item.name }}</td>{% if item.quantity is defined %}<td>x{{ item.quantity }}</td>{% endif %}{% if item.price is defined %}<td>{{ "%.2f"|format(item.price) }}</td>{% endif %}{% if item.reviewUrl is defined %}<td><a href="{{ item.reviewUrl }}">{{ review_label }}</a></td>{% endif %}</tr>
{% endfor %}</table>
"""

_BODIES: dict[str, dict[str, str]] = {
    "en": {
        "welcome": """<h1>Welcome, {{ firstName }}!</h1>
<p>Thanks for joining {{ storeName }}. Start shopping at <a href="{{ storeUrl }}">{{ storeUrl }}</a>.</p>""",
        "order-confirmation": """<h1>Thank you for your order, {{ firstName }}!</h1>
<p>Order #{{ orderId }} placed on {{ orderDate }}.</p>
{% with review_label = "" %}{% include "_items.html" %}{% endwith %}
<p>Subtotal: {{ "%.2f"|format(subtotal) }}<br>Tax: {{ "%.2f"|format(tax) }}<br>Shipping: {{ "%.2f"|format(shipping) }}<br><strong>Total: {{ "%.2f"|format(total) }}</strong></p>
{% if shippingAddress %}<p>Shipping to: {{ shippingAddress.street }}, {{ shippingAddress.city }}, {{ shippingAddress.state }} {{ shippingAddress.postalCode }}, {{ shippingAddress.country }}</p>{% endif %}
<p><a href="{{ orderUrl }}">View your order</a></p>""",
        "order-shipped": """<h1>Good news, {{ firstName }}!</h1>
<p>Order #{{ orderId }} is on its way. Tracking number: {{ trackingNumber }}.</p>
<p>Estimated delivery: {{ estimatedDelivery }}</p>
<p><a href="{{ trackingUrl }}">Track your package</a> | <a href="{{ orderUrl }}">View your order</a></p>""",
        "order-delivered": """<h1>Delivered!</h1>
<p>Hi {{ firstName }}, order #{{ orderId }} has been delivered.</p>
<p><a href="{{ reviewUrl }}">Leave a review</a> | <a href="{{ orderUrl }}">View your order</a></p>""",
        "password-reset": """<h1>Password reset</h1>
<p>Hi {{ firstName }}, we received a request to reset your password.</p>
<p><a href="{{ resetUrl }}">Reset password</a>. This link expires in {{ expiryTime }}.</p>
<p>If you did not request this, you can ignore this email.</p>""",
        "review-request": """<h1>How was your order, {{ firstName }}?</h1>
<p>Tell us what you think about the items from order #{{ orderId }}.</p>
{% with review_label = "Review" %}{% include "_items.html" %}{% endwith %}
<p><a href="{{ orderUrl }}">View your order</a></p>""",
        "birthday-bonus": """<h1>Happy Birthday, {{ firstName }}!</h1>
<p>As a token of our appreciation, we have added {{ points }} bonus points to your loyalty account.</p>""",
        "loyalty-summary": """<h1>Weekly Loyalty Summary</h1>
<p>Hi {{ firstName }}, here is your loyalty activity for this week:</p>
<ul><li>Points earned: {{ totalEarned }}</li><li>Points redeemed: {{ totalRedeemed }}</li><li>Current balance: {{ balance }}</li></ul>
<p>Keep shopping to earn more rewards!</p>""",
    },
    "es": {
        "welcome": """<h1>¡Bienvenido, {{ firstName }}!</h1>
<p>Gracias por unirte a {{ storeName }}. Empieza a comprar en <a href="{{ storeUrl }}">{{ storeUrl }}</a>.</p>""",
        "order-confirmation": """<h1>¡Gracias por tu pedido, {{ firstName }}!</h1>
<p>Pedido #{{ orderId }} realizado el {{ orderDate }}.</p>
{% with review_label = "" %}{% include "_items.html" %}{% endwith %}
<p>Subtotal: {{ "%.2f"|format(subtotal) }}<br>Impuestos: {{ "%.2f"|format(tax) }}<br>Envío: {{ "%.2f"|format(shipping) }}<br><strong>Total: {{ "%.2f"|format(total) }}</strong></p>
{% if shippingAddress %}<p>Enviar a: {{ shippingAddress.street }}, {{ shippingAddress.city }}, {{ shippingAddress.state }} {{ shippingAddress.postalCode }}, {{ shippingAddress.country }}</p>{% endif %}
<p><a href="{{ orderUrl }}">Ver tu pedido</a></p>""",
        "order-shipped": """<h1>¡Buenas noticias, {{ firstName }}!</h1>
<p>El pedido #{{ orderId }} está en camino. Número de seguimiento: {{ trackingNumber }}.</p>
<p>Entrega estimada: {{ estimatedDelivery }}</p>
<p><a href="{{ trackingUrl }}">Seguir el paquete</a> | <a href="{{ orderUrl }}">Ver tu pedido</a></p>""",
        "order-delivered": """<h1>¡Entregado!</h1>
<p>Hola {{ firstName }}, el pedido #{{ orderId }} ha sido entregado.</p>
<p><a href="{{ reviewUrl }}">Deja una reseña</a> | <a href="{{ orderUrl }}">Ver tu pedido</a></p>""",
        "password-reset": """<h1>Restablecer contraseña</h1>
<p>Hola {{ firstName }}, recibimos una solicitud para restablecer tu contraseña.</p>
<p><a href="{{ resetUrl }}">Restablecer contraseña</a>. Este enlace caduca en {{ expiryTime }}.</p>
<p>Si no lo solicitaste, puedes ignorar este correo.</p>""",
        "review-request": """<h1>¿Qué tal tu pedido, {{ firstName }}?</h1>
<p>Cuéntanos qué opinas de los artículos del pedido #{{ orderId }}.</p>
{% with review_label = "Valorar" %}{% include "_items.html" %}{% endwith %}
<p><a href="{{ orderUrl }}">Ver tu pedido</a></p>""",
        "birthday-bonus": """<h1>¡Feliz cumpleaños, {{ firstName }}!</h1>
<p>Como muestra de agradecimiento, hemos añadido {{ points }} puntos extra a tu cuenta de fidelidad.</p>""",
        "loyalty-summary": """<h1>Resumen semanal de fidelidad</h1>
<p>Hola {{ firstName }}, esta es tu actividad de esta semana:</p>
<ul><li>Puntos ganados: {{ totalEarned }}</li><li>Puntos canjeados: {{ totalRedeemed }}</li><li>Saldo actual: {{ balance }}</li></ul>
<p>¡Sigue comprando para ganar más recompensas!</p>""",
    },
}


def _sources() -> dict[str, str]:
    sources = {"_layout.html": _LAYOUT, "_items.html": _ITEMS}
    for lang, bodies in _BODIES.items():
        for name, body in bodies.items():
            sources[f"{lang}/{name}.html"] = '{% extends "_layout.html" %}{% block body %}' + body + "{% endblock %}"
        for name, subject in SUBJECTS[lang].items():
            sources[f"{lang}/{name}.subject"] = subject
    return sources


class TemplateRenderer:
    def __init__(self, default_language: str = "en") -> None:
        self.default_language = default_language
        self.env = Environment(
            loader=DictLoader(_sources()),
            autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
        )

    def _language(self, language: str | None) -> str:
        return language if language in _BODIES else self.default_language

    def render(self, name: str, context: dict[str, Any], language: str | None = None) -> tuple[str, str]:
        """Return ``(subject, html)``; unknown languages fall back to the default one."""
        if name not in TEMPLATE_NAMES:
            raise TemplateNotFound(name)
        lang = self._language(language)
        subject = self.env.get_template(f"{lang}/{name}.subject").render(**context)
        html = self.env.get_template(f"{lang}/{name}.html").render(**context)
        return subject.strip(), html


__all__ = ["TemplateRenderer", "TEMPLATE_NAMES", "SUBJECTS"]
