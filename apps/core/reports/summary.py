"""
Narrative summary of the billing report, written by a hosted language model.

The call is best effort: a missing key or any transport/response problem
returns a fixed sentence instead of raising.
"""
import logging

import requests
from django.conf import settings

from apps.core.utils.formatting import format_currency

logger = logging.getLogger(__name__)

UNAVAILABLE_MESSAGE = 'AI service is unavailable. Please configure the API Key.'
FAILURE_MESSAGE = 'An error occurred while generating the AI summary. Please try again later.'


def build_summary_prompt(stats):
    return (
        'You are an expert school administrator analyzing a monthly billing report '
        'for a Montessori school.\n'
        'Given the following data, provide a concise, insightful summary in a few bullet points.\n'
        'Focus on the financial health and key action items for the administration.\n'
        f'The currency is Nepali Rupees ({settings.CURRENCY_SYMBOL}).\n\n'
        'Data:\n'
        f"- Total Students: {stats['total_students']}\n"
        f"- Total Amount Collected this month: {format_currency(stats['total_collected'])}\n"
        f"- Total Amount Due this month: {format_currency(stats['total_due'])}\n"
        f"- Number of Invoices with Pending Dues: {stats['pending_invoices']}\n\n"
        'Generate the summary.'
    )


def _response_text(payload):
    candidates = payload.get('candidates') or []
    if not candidates:
        return ''
    parts = (candidates[0].get('content') or {}).get('parts') or []
    return ''.join(part.get('text', '') for part in parts).strip()


def generate_report_summary(stats):
    api_key = settings.AI_SUMMARY_API_KEY
    if not api_key:
        logger.warning('AI summary requested but AI_SUMMARY_API_KEY is not set')
        return UNAVAILABLE_MESSAGE

    url = settings.AI_SUMMARY_ENDPOINT.format(model=settings.AI_SUMMARY_MODEL)
    body = {'contents': [{'parts': [{'text': build_summary_prompt(stats)}]}]}

    try:
        response = requests.post(
            url,
            json=body,
            headers={'x-goog-api-key': api_key},
            timeout=settings.AI_SUMMARY_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        text = _response_text(response.json())
    except (requests.RequestException, ValueError):
        logger.exception('AI summary request failed')
        return FAILURE_MESSAGE

    if not text:
        logger.error('AI summary response had no text')
        return FAILURE_MESSAGE
    return text
