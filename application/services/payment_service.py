"""
Application service orchestrating payment use-cases.

This class depends on the application GatewaySigner port, the domain state
machine and an abstract unit of work. Signers and the unit of work factory are
provided by infrastructure and injected from the composition root (API),
keeping dependencies one-way.
"""
from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any, Callable, Mapping, Optional

from application.dtos.payments import (
    CallbackResult,
    CheckoutContext,
    CheckoutRequest,
    CheckoutResult,
    PaymentIntentView,
)
from application.ports.payment_gateway import GatewaySigner
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from domain.common.exceptions import (
    BusinessException,
    PaymentCallbackTimeoutError,
    PaymentGatewayMismatchError,
    PaymentIntentNotFoundException,
    PaymentSignatureError,
    PaymentValidationError,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import (
    CallbackTransport,
    CanonicalOutcome,
    Gateway,
    GatewayCallback,
    build_idempotency_key,
)
from domain.payment.service import PaymentDomainService


logger = get_logger(__name__)

AMOUNT_MISMATCH = "amount_mismatch"


class PaymentService:
    def __init__(
        self,
        uow_factory: Callable[[], AbstractUnitOfWork],
        signer_factory: Callable[[str], GatewaySigner],
        cfg: Optional[PaymentSettings] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._signer_factory = signer_factory
        self._cfg = cfg or payment_settings

    def _domain(self, uow: AbstractUnitOfWork) -> PaymentDomainService:
        return PaymentDomainService(uow.payment_intents, max_attempts=self._cfg.transition_max_attempts)

    async def create_payment_url(
        self,
        gateway: str,
        req: CheckoutRequest,
        ctx: CheckoutContext,
    ) -> CheckoutResult:
        """Create the intent, sign the redirect URL and move to awaiting_callback."""
        signer = self._signer_factory(gateway)
        logger.info(
            "payment_checkout_request",
            gateway=signer.gateway,
            order_reference=req.order_reference,
            amount_minor_units=req.amount_minor_units,
        )
        async with self._uow_factory() as uow:
            domain = self._domain(uow)
            intent = await domain.create_intent(
                order_reference=req.order_reference,
                gateway=Gateway(signer.gateway),
                amount_minor_units=req.amount_minor_units,
                currency=self._cfg.currency,
                description=req.description,
                metadata=req.metadata,
            )
            # Validation errors raised here roll the intent back with the transaction
            payment_url = signer.build_payment_url(intent, ctx)
            issued = await domain.mark_url_issued(intent.order_reference)
            await uow.commit()

        logger.info(
            "payment_url_issued",
            gateway=signer.gateway,
            order_reference=intent.order_reference,
            status=issued.status.value,
        )
        return CheckoutResult(
            payment_url=payment_url,
            order_reference=intent.order_reference,
            gateway=signer.gateway,
            status=issued.status,
        )

    async def handle_callback(
        self,
        gateway: str,
        raw_params: Mapping[str, Any],
        transport: CallbackTransport,
    ) -> CallbackResult:
        """Verify and apply a return/IPN callback. Never raises for vendor input.

        Any rejection (bad signature, unknown order, timeout, persistent CAS
        conflict) yields ``acknowledged=False`` with no reason attached; the
        reason only goes to the log.
        """
        signer = self._signer_factory(gateway)
        timeout = self._cfg.callback_timeout_seconds
        try:
            return await asyncio.wait_for(
                self._process_callback(signer, raw_params, CallbackTransport(transport)),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            exc = PaymentCallbackTimeoutError(provider=signer.gateway, timeout=timeout)
            logger.error("callback_processing_timeout", gateway=signer.gateway, timeout=timeout, code=exc.code)
        except BusinessException as exc:
            logger.warning(
                "callback_rejected",
                gateway=signer.gateway,
                transport=CallbackTransport(transport).value,
                code=exc.code,
                error_type=exc.error_type,
            )
        return CallbackResult(acknowledged=False, gateway=signer.gateway)

    def claimed_order_reference(self, gateway: str, raw_params: Mapping[str, Any]) -> Optional[str]:
        """Order reference as the caller sent it, unverified. Only for echoing back to the browser."""
        signer = self._signer_factory(gateway)
        try:
            params = signer.parse_callback(raw_params)
        except PaymentValidationError:
            return None
        return params.get(signer.order_reference_field) or None

    async def _process_callback(
        self,
        signer: GatewaySigner,
        raw_params: Mapping[str, Any],
        transport: CallbackTransport,
    ) -> CallbackResult:
        callback = signer.verify_callback(raw_params, transport)

        if not callback.signature_valid:
            # Keep the audit trail, leave the order untouched
            async with self._uow_factory() as uow:
                await uow.gateway_callbacks.add(callback)
                await uow.commit()
            raise PaymentSignatureError(
                "Callback signature mismatch",
                provider=signer.gateway,
                details={"order_reference": callback.order_reference},
            )

        async with self._uow_factory() as uow:
            ref = callback.order_reference
            intent = await uow.payment_intents.find_by_reference(ref) if ref else None
            if intent is None:
                await uow.gateway_callbacks.add(callback)
                await uow.commit()
                raise PaymentIntentNotFoundException(ref or "")
            if Gateway(signer.gateway) != intent.gateway:
                # 签名有效但来自另一个网关，只留审计记录
                await uow.gateway_callbacks.add(callback)
                await uow.commit()
                raise PaymentGatewayMismatchError(
                    ref, provider=signer.gateway, expected=Gateway(intent.gateway).value
                )

            outcome = callback.canonical_outcome
            failure_reason = None
            expected_amount = signer.scale_amount(intent.amount_minor_units)
            if callback.vendor_amount != expected_amount:
                logger.warning(
                    "callback_amount_mismatch",
                    gateway=signer.gateway,
                    order_reference=ref,
                    expected=expected_amount,
                    received=callback.vendor_amount,
                )
                outcome = CanonicalOutcome.FAILED
                failure_reason = AMOUNT_MISMATCH

            key = build_idempotency_key(ref, callback.transaction_ref, outcome)
            duplicate = await uow.gateway_callbacks.exists_by_idempotency_key(key)

            domain = self._domain(uow)
            result = await domain.apply_outcome(
                ref,
                outcome,
                transaction_ref=callback.transaction_ref,
                vendor_result_code=callback.vendor_result_code,
                failure_reason=failure_reason,
            )
            record: GatewayCallback = replace(
                callback,
                canonical_outcome=outcome,
                idempotency_key=key,
                duplicate=duplicate,
                applied=result.applied,
            )
            await uow.gateway_callbacks.add(record)
            await uow.commit()

        for event in domain.clear_events():
            logger.info(
                "payment_event",
                event_type=type(event).__name__,
                event_id=event.event_id,
                order_reference=event.order_reference,
                gateway=event.gateway,
            )
        if result.ignored:
            logger.warning("callback_before_url_issued", gateway=signer.gateway, order_reference=ref)
        if result.stale:
            logger.info("callback_stale", gateway=signer.gateway, order_reference=ref, status=result.status.value)
        logger.info(
            "callback_processed",
            gateway=signer.gateway,
            transport=transport.value,
            order_reference=ref,
            vendor_code=callback.vendor_result_code,
            reclassified=callback.reclassified,
            outcome=outcome.value,
            status=result.status.value,
            applied=result.applied,
            duplicate=duplicate,
            attempts=result.attempts,
        )
        return CallbackResult(
            acknowledged=True,
            gateway=signer.gateway,
            order_reference=ref,
            outcome=outcome,
            status=result.status,
            applied=result.applied,
            duplicate=duplicate,
            stale=result.stale,
        )

    async def get_status(self, order_reference: str) -> PaymentIntentView:
        async with self._uow_factory() as uow:
            intent = await uow.payment_intents.find_by_reference(order_reference)
        if intent is None:
            raise PaymentIntentNotFoundException(order_reference)
        return PaymentIntentView.from_entity(intent)

    async def expire_intent(self, order_reference: str) -> PaymentIntentView:
        async with self._uow_factory() as uow:
            domain = self._domain(uow)
            result = await domain.expire(order_reference)
            intent = await domain.get_intent(order_reference)
            await uow.commit()
        for event in domain.clear_events():
            logger.info(
                "payment_event",
                event_type=type(event).__name__,
                event_id=event.event_id,
                order_reference=event.order_reference,
                gateway=event.gateway,
            )
        logger.info(
            "payment_intent_expire",
            order_reference=order_reference,
            status=result.status.value,
            applied=result.applied,
        )
        return PaymentIntentView.from_entity(intent)
