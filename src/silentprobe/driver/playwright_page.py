"""PageHandle implementation over the Playwright sync API."""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page, Request, Response, sync_playwright
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from silentprobe.driver.types import FeedbackState, NetworkCounters
from silentprobe.errors import DriverError, DriverTimeout, InfrastructureError

logger = logging.getLogger(__name__)

VIEWPORT = {"width": 1280, "height": 720}
BLOCKED_STATUSES = frozenset({401, 403})

# Text-only changes are not DOM activity.
MUTATION_OBSERVER_OPTIONS = {"attributes": True, "childList": True, "subtree": True}

MUTATION_OBSERVER_SCRIPT = """
(() => {
  if (window.__silentprobeObserver) return;
  window.__silentprobeMutations = 0;
  const start = () => {
    const target = document.documentElement || document;
    window.__silentprobeObserver = new MutationObserver((records) => {
      window.__silentprobeMutations += records.length;
    });
    window.__silentprobeObserver.observe(target, %s);
  };
  if (document.documentElement) start();
  else document.addEventListener('DOMContentLoaded', start, { once: true });
})();
""" % json.dumps(MUTATION_OBSERVER_OPTIONS, sort_keys=True)

DISCOVERY_SCRIPT = """
() => {
  const cssPath = (el) => {
    if (el.id) return `#${CSS.escape(el.id)}`;
    const parts = [];
    let node = el;
    while (node && node.nodeType === 1 && node !== document.documentElement) {
      if (node.id) { parts.unshift(`#${CSS.escape(node.id)}`); break; }
      let index = 1;
      let sibling = node.previousElementSibling;
      while (sibling) {
        if (sibling.tagName === node.tagName) index += 1;
        sibling = sibling.previousElementSibling;
      }
      parts.unshift(`${node.tagName.toLowerCase()}:nth-of-type(${index})`);
      node = node.parentElement;
    }
    return parts.join(' > ');
  };
  const visible = (el) => !!(el.offsetParent || el.getClientRects().length);
  const text = (el) => (el.innerText || el.value || '').trim().slice(0, 120);
  const labelFor = (el) => {
    if (el.labels && el.labels.length) return el.labels[0].innerText.trim();
    return el.getAttribute('title') || el.getAttribute('placeholder') || '';
  };
  const out = [];
  document.querySelectorAll('a[href]').forEach((a) => {
    if (!visible(a)) return;
    out.push({ type: 'link', selector: cssPath(a), text: text(a), label: labelFor(a),
      ariaLabel: a.getAttribute('aria-label') || '', href: a.href,
      danger: a.dataset.danger !== undefined });
  });
  document.querySelectorAll('button, [role="button"], input[type="button"]').forEach((b) => {
    if (!visible(b) || b.closest('form')) return;
    out.push({ type: 'button', selector: cssPath(b), text: text(b), label: labelFor(b),
      ariaLabel: b.getAttribute('aria-label') || '', danger: b.dataset.danger !== undefined });
  });
  document.querySelectorAll('form').forEach((form) => {
    if (!visible(form)) return;
    const fields = Array.from(form.querySelectorAll(
      'input:not([type="hidden"]):not([type="submit"]):not([type="button"]):not([type="file"]), textarea'
    )).filter(visible);
    const submit = form.querySelector('button[type="submit"], input[type="submit"], button:not([type])');
    out.push({ type: 'form', selector: cssPath(form), text: submit ? text(submit) : '',
      label: form.getAttribute('name') || form.getAttribute('action') || '',
      ariaLabel: form.getAttribute('aria-label') || '',
      inputs: fields.map(cssPath), submit: submit ? cssPath(submit) : null,
      hasPassword: fields.some((f) => f.type === 'password'),
      danger: form.dataset.danger !== undefined });
  });
  document.querySelectorAll('input[type="file"]').forEach((f) => {
    if (!visible(f)) return;
    out.push({ type: 'file_upload', selector: cssPath(f), text: '', label: labelFor(f),
      ariaLabel: f.getAttribute('aria-label') || '' });
  });
  document.querySelectorAll('[onmouseover], [data-hover]').forEach((h) => {
    if (!visible(h)) return;
    out.push({ type: 'hover', selector: cssPath(h), text: text(h), label: labelFor(h),
      ariaLabel: h.getAttribute('aria-label') || '' });
  });
  document.querySelectorAll('[tabindex]:not(a):not(button):not(input)').forEach((k) => {
    if (!visible(k) || k.tabIndex < 0) return;
    out.push({ type: 'keyboard', selector: cssPath(k), text: text(k), label: labelFor(k),
      ariaLabel: k.getAttribute('aria-label') || '' });
  });
  return out;
}
"""

DOM_SCRIPT = """
() => {
  const body = document.body;
  if (!body) return '';
  const clone = body.cloneNode(true);
  clone.querySelectorAll('script, style, noscript').forEach((n) => n.remove());
  return clone.innerHTML.replace(/\\s+/g, ' ').trim();
}
"""

STORAGE_SCRIPT = """
() => {
  const dump = (store) => {
    const out = {};
    try {
      for (let i = 0; i < store.length; i += 1) {
        const key = store.key(i);
        out[key] = store.getItem(key);
      }
    } catch (e) {}
    return out;
  };
  return { localStorage: dump(window.localStorage), sessionStorage: dump(window.sessionStorage) };
}
"""

FEEDBACK_SCRIPT = """
() => {
  const visible = (el) => !!(el.offsetParent || el.getClientRects().length);
  const count = (selector) => Array.from(document.querySelectorAll(selector)).filter(visible).length;
  const live = Array.from(document.querySelectorAll('[aria-live]:not([aria-live="off"])'))
    .map((el) => (el.innerText || '').trim()).filter(Boolean).join(' | ');
  return {
    feedback: count('[role="status"], [role="alert"], .toast, .notification, .alert, .error, .success, .flash'),
    alerts: count('[role="alert"]'),
    loading: count('[aria-busy="true"], [role="progressbar"], .spinner, .loading, .loader'),
    live: live.slice(0, 500),
  };
}
"""


class _NetworkMonitor:
    """Counts requests through page events."""

    def __init__(self) -> None:
        self.events = 0
        self.inflight = 0
        self.blocked = 0

    def on_request(self, request: Request) -> None:
        self.events += 1
        self.inflight += 1

    def on_done(self, request: Request) -> None:
        self.inflight = max(0, self.inflight - 1)

    def on_response(self, response: Response) -> None:
        if response.status in BLOCKED_STATUSES:
            self.blocked += 1

    def attach(self, page: Page) -> None:
        page.on("request", self.on_request)
        page.on("requestfinished", self.on_done)
        page.on("requestfailed", self.on_done)
        page.on("response", self.on_response)


@contextmanager
def _translated(operation: str) -> Iterator[None]:
    try:
        yield
    except PlaywrightTimeoutError as exc:
        raise DriverTimeout(f"{operation} timed out: {exc}") from exc
    except PlaywrightError as exc:
        raise DriverError(f"{operation} failed: {exc}") from exc


class PlaywrightPage:
    """Adapts a Playwright ``Page`` to the PageHandle contract."""

    def __init__(self, page: Page) -> None:
        self._page = page
        self._network = _NetworkMonitor()
        self._network.attach(page)

    @property
    def url(self) -> str:
        return self._page.url

    def goto(self, url: str, *, timeout_ms: int) -> int | None:
        with _translated(f"goto {url}"):
            response = self._page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        return response.status if response is not None else None

    def click(self, selector: str, *, timeout_ms: int) -> None:
        with _translated(f"click {selector}"):
            self._page.click(selector, timeout=timeout_ms)

    def fill(self, selector: str, value: str, *, timeout_ms: int) -> None:
        with _translated(f"fill {selector}"):
            self._page.fill(selector, value, timeout=timeout_ms)

    def hover(self, selector: str, *, timeout_ms: int) -> None:
        with _translated(f"hover {selector}"):
            self._page.hover(selector, timeout=timeout_ms)

    def focus(self, selector: str, *, timeout_ms: int) -> None:
        with _translated(f"focus {selector}"):
            self._page.focus(selector, timeout=timeout_ms)

    def press(self, selector: str, key: str, *, timeout_ms: int) -> None:
        with _translated(f"press {key} on {selector}"):
            self._page.press(selector, key, timeout=timeout_ms)

    def set_input_files(self, selector: str, files: list[str], *, timeout_ms: int) -> None:
        with _translated(f"upload to {selector}"):
            self._page.set_input_files(selector, files, timeout=timeout_ms)

    def evaluate(self, expression: str, arg: Any = None) -> Any:
        with _translated("evaluate"):
            return self._page.evaluate(expression, arg)

    def wait_for_load_state(self, state: str, *, timeout_ms: int) -> None:
        with _translated(f"wait for {state}"):
            self._page.wait_for_load_state(state, timeout=timeout_ms)  # type: ignore[arg-type]

    def wait_for_timeout(self, timeout_ms: float) -> None:
        with _translated("wait"):
            self._page.wait_for_timeout(timeout_ms)

    def query_interactions(self) -> list[dict[str, Any]]:
        return list(self.evaluate(DISCOVERY_SCRIPT) or [])

    def dom_fingerprint(self) -> str:
        markup = self.evaluate(DOM_SCRIPT) or ""
        return hashlib.sha256(markup.encode("utf-8")).hexdigest()

    def storage_snapshot(self) -> dict[str, dict[str, str]]:
        raw = self.evaluate(STORAGE_SCRIPT) or {}
        return {area: dict(values or {}) for area, values in raw.items()}

    def feedback_snapshot(self) -> FeedbackState:
        raw = self.evaluate(FEEDBACK_SCRIPT) or {}
        return FeedbackState(
            feedback_count=int(raw.get("feedback", 0)),
            aria_live_text=str(raw.get("live", "")),
            alert_count=int(raw.get("alerts", 0)),
            loading_count=int(raw.get("loading", 0)),
        )

    def network_counters(self) -> NetworkCounters:
        return NetworkCounters(
            events=self._network.events,
            inflight=self._network.inflight,
            blocked=self._network.blocked,
        )

    def mutation_count(self) -> int:
        return int(self.evaluate("() => window.__silentprobeMutations || 0") or 0)


@contextmanager
def open_browser(headless: bool = True) -> Iterator[PlaywrightPage]:
    """Launch Chromium and yield a single adapted page.

    Raises InfrastructureError when the browser cannot be started.
    """
    with sync_playwright() as playwright:
        try:
            browser = playwright.chromium.launch(headless=headless)
        except PlaywrightError as exc:
            raise InfrastructureError(f"Browser launch failed: {exc}") from exc
        try:
            context = browser.new_context(viewport=VIEWPORT)  # type: ignore[arg-type]
            context.add_init_script(MUTATION_OBSERVER_SCRIPT)
            page = context.new_page()
            logger.debug("browser launched (headless=%s)", headless)
            yield PlaywrightPage(page)
        finally:
            browser.close()
