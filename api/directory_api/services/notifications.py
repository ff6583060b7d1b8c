from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Protocol

import httpx

from directory_api.core.config import get_settings

logger = logging.getLogger(__name__)

_WRAPPER_OPEN = '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
_WRAPPER_CLOSE = "</div>"


@dataclass(slots=True)
class NotificationRequest:
    to: str | list[str]
    subject: str
    html: str
    text: str | None = None
    cc: str | list[str] | None = None
    bcc: str | list[str] | None = None
    reply_to: str | None = None
    sender: str | None = None


@dataclass(slots=True)
class DeliveryResult:
    ok: bool
    message_id: str | None = None
    error: str | None = None


class NotificationGateway(Protocol):
    async def send(self, request: NotificationRequest) -> DeliveryResult: ...


class ResendNotificationGateway:
    """Delivers notification e-mails through the Resend REST API.

    Delivery failures are reported through ``DeliveryResult`` and logged; ``send`` does not raise
    for transport or API errors.
    """

    def __init__(
        self,
        *,
        api_url: str,
        api_key: str | None,
        default_sender: str,
        timeout_seconds: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.default_sender = default_sender
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def send(self, request: NotificationRequest) -> DeliveryResult:
        if not self.api_key:
            logger.warning("notification skipped subject=%r: Resend API key is not configured", request.subject)
            return DeliveryResult(ok=False, error="Resend API key is not configured")
        if not request.to:
            logger.warning("notification skipped subject=%r: empty recipient", request.subject)
            return DeliveryResult(ok=False, error="notification recipient is required")

        payload = self._build_payload(request)
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.post(f"{self.api_url}/emails", json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("notification delivery failed subject=%r error=%s", request.subject, exc)
            return DeliveryResult(ok=False, error="notification transport unavailable")

        if response.status_code >= 400:
            logger.warning(
                "notification rejected by Resend subject=%r status=%s body=%s",
                request.subject,
                response.status_code,
                response.text[:500],
            )
            return DeliveryResult(ok=False, error=f"notification rejected with status {response.status_code}")

        message_id: str | None = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("id"), str):
            message_id = body["id"]
        return DeliveryResult(ok=True, message_id=message_id)

    def _build_payload(self, request: NotificationRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "from": request.sender or self.default_sender,
            "to": request.to,
            "subject": request.subject,
            "html": request.html,
        }
        if request.text:
            payload["text"] = request.text
        if request.cc:
            payload["cc"] = request.cc
        if request.bcc:
            payload["bcc"] = request.bcc
        if request.reply_to:
            payload["reply_to"] = request.reply_to
        return payload


def _render(title: str, greeting_name: str | None, paragraphs: list[str], brand: str) -> str:
    parts = [_WRAPPER_OPEN, f'<h1 style="color: #4a6da7;">{html.escape(title)}</h1>']
    if greeting_name:
        parts.append(f"<p>Olá, {html.escape(greeting_name)}!</p>")
    parts.extend(f"<p>{paragraph}</p>" for paragraph in paragraphs)
    parts.append(f"<p>Atenciosamente,<br>Equipe {html.escape(brand)}</p>")
    parts.append(_WRAPPER_CLOSE)
    return "\n".join(parts)


def _owner(entity: dict[str, Any]) -> tuple[str, str | None]:
    return str(entity.get("owner_email") or ""), entity.get("owner_name")


def business_approved(entity: dict[str, Any], brand: str) -> NotificationRequest:
    to, name = _owner(entity)
    subject = "Seu cadastro foi aprovado!"
    body = _render(
        "Cadastro Aprovado!",
        name,
        [
            f"Temos o prazer de informar que seu cadastro como empresa foi <strong>aprovado</strong> no {html.escape(brand)}.",
            "A partir de agora você pode publicar vagas de emprego, receber candidaturas e destacar sua empresa no diretório.",
        ],
        brand,
    )
    return NotificationRequest(to=to, subject=subject, html=body)


def professional_approved(entity: dict[str, Any], brand: str) -> NotificationRequest:
    to, name = _owner(entity)
    subject = "Seu cadastro foi aprovado!"
    body = _render(
        "Cadastro Aprovado!",
        name,
        [
            f"Temos o prazer de informar que seu cadastro como profissional foi <strong>aprovado</strong> no {html.escape(brand)}.",
            "A partir de agora você pode destacar seu perfil, receber propostas de trabalho e candidatar-se a vagas.",
        ],
        brand,
    )
    return NotificationRequest(to=to, subject=subject, html=body)


def job_approved(entity: dict[str, Any], brand: str) -> NotificationRequest:
    to, name = _owner(entity)
    title = html.escape(str(entity.get("display_name") or ""))
    body = _render(
        "Vaga Aprovada!",
        name,
        [
            f"Temos o prazer de informar que sua vaga <strong>{title}</strong> foi aprovada no {html.escape(brand)}.",
            "A partir de agora sua vaga está visível para todos os profissionais da plataforma.",
        ],
        brand,
    )
    return NotificationRequest(to=to, subject="Sua vaga foi aprovada!", html=body)


def business_rejected(entity: dict[str, Any], reason: str, brand: str) -> NotificationRequest:
    to, name = _owner(entity)
    business_name = html.escape(str(entity.get("display_name") or ""))
    body = _render(
        "Cadastro Não Aprovado",
        name,
        [
            f"Infelizmente, sua empresa <strong>{business_name}</strong> não foi aprovada no {html.escape(brand)}.",
            f"<strong>Motivo:</strong> {html.escape(reason)}",
            "Você pode editar as informações da sua empresa e solicitar uma nova revisão.",
        ],
        brand,
    )
    return NotificationRequest(to=to, subject="Sua empresa não foi aprovada", html=body)


def professional_rejected(entity: dict[str, Any], reason: str, brand: str) -> NotificationRequest:
    to, name = _owner(entity)
    occupation = html.escape(str(entity.get("context_name") or ""))
    body = _render(
        "Cadastro Não Aprovado",
        name,
        [
            f"Infelizmente, seu perfil profissional como <strong>{occupation}</strong> não foi aprovado no {html.escape(brand)}.",
            f"<strong>Motivo:</strong> {html.escape(reason)}",
            "Você pode editar as informações do seu perfil e solicitar uma nova revisão.",
        ],
        brand,
    )
    return NotificationRequest(to=to, subject="Seu perfil profissional não foi aprovado", html=body)


def job_rejected(entity: dict[str, Any], reason: str, brand: str) -> NotificationRequest:
    to, name = _owner(entity)
    title = html.escape(str(entity.get("display_name") or ""))
    body = _render(
        "Vaga Não Aprovada",
        name,
        [
            f"Infelizmente, sua vaga <strong>{title}</strong> não foi aprovada no {html.escape(brand)}.",
            f"<strong>Motivo:</strong> {html.escape(reason)}",
            "Você pode editar as informações da vaga e solicitar uma nova revisão.",
        ],
        brand,
    )
    return NotificationRequest(to=to, subject="Sua vaga não foi aprovada", html=body)


@lru_cache
def get_notification_gateway() -> ResendNotificationGateway:
    settings = get_settings()
    return ResendNotificationGateway(
        api_url=settings.resend_api_url,
        api_key=settings.resend_api_key,
        default_sender=settings.email_from,
        timeout_seconds=settings.email_timeout_seconds,
    )
