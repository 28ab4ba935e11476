#!/usr/bin/env python3
"""Drive a running API through a short doctor/patient exchange and print the results."""

import argparse
import sys
from typing import List, Optional, Tuple

import requests

DEFAULT_EXCHANGE: List[Tuple[str, str]] = [
    ("doctor", "Good morning. What brings you in today?"),
    ("patient", "Tengo fiebre y tos desde hace tres días."),
    ("doctor", "Are you taking any medication for the fever?"),
    ("patient", "Solo paracetamol, dos veces al día."),
    ("doctor", "Keep taking it and come back if the fever lasts more than five days."),
]


def _check(resp: requests.Response, step: str) -> dict:
    try:
        resp.raise_for_status()
    except requests.HTTPError as exc:
        raise SystemExit(f"[smoke] {step} failed: {exc} - {resp.text}")
    return resp.json() if resp.content else {}


def run_exchange(
    session: requests.Session,
    base_url: str,
    doctor_language: str,
    patient_language: str,
    exchange: List[Tuple[str, str]],
    query: Optional[str] = None,
    timeout: float = 60,
) -> dict:
    base_url = base_url.rstrip("/")
    conversation = _check(
        session.post(
            f"{base_url}/conversations",
            json={"doctor_language": doctor_language, "patient_language": patient_language},
            timeout=timeout,
        ),
        "create conversation",
    )
    conversation_id = conversation["id"]
    print(f"[smoke] conversation {conversation_id} ({doctor_language} <-> {patient_language})")

    for role, text in exchange:
        message = _check(
            session.post(
                f"{base_url}/conversations/{conversation_id}/messages",
                data={"sender_role": role, "original_text": text},
                timeout=timeout,
            ),
            f"send {role} message",
        )
        print(f"[smoke] {role}: {text}\n        -> {message.get('translated_text')}")

    results = []
    if query:
        results = _check(
            session.get(f"{base_url}/search", params={"q": query}, timeout=timeout),
            "search",
        )
        print(f"[smoke] search {query!r}: {len(results)} hit(s)")
        for result in results:
            print(f"        [{result['sender_role']}] ...{result['context']}...")

    summary = _check(
        session.post(f"{base_url}/conversations/{conversation_id}/summary", timeout=timeout),
        "summarise",
    )
    for field in ("symptoms", "diagnoses", "medications", "followup_actions"):
        print(f"[smoke] {field}: {', '.join(summary.get(field, [])) or '-'}")
    print(f"[smoke] summary: {summary.get('full_text', '')}")

    return {"conversation_id": conversation_id, "results": results, "summary": summary}


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--base-url",
        default="http://localhost:8000/api",
        help="API prefix of the running service.",
    )
    parser.add_argument("--doctor-language", default="en")
    parser.add_argument("--patient-language", default="es")
    parser.add_argument(
        "--search",
        default="fever",
        help="Query to run once the exchange has been stored (empty to skip).",
    )

    args = parser.parse_args(argv)
    with requests.Session() as session:
        try:
            run_exchange(
                session,
                args.base_url,
                args.doctor_language,
                args.patient_language,
                DEFAULT_EXCHANGE,
                query=args.search or None,
            )
        except requests.ConnectionError as exc:
            print(f"[smoke] cannot reach {args.base_url}: {exc}", file=sys.stderr)
            return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
