"""Live scene handles.

A SceneHandle is the exclusive connection a FULL session holds to one open
scene. PlaywrightSceneHandle drives a Chromium page, injects a small bridge
script and talks to the page's scene runtime through a RequestChannel.
"""
from __future__ import annotations

import base64
import logging
from abc import ABC, abstractmethod
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from core.config import cfg
from core.errors import SceneLoadTimeout, SceneOperationError, SessionExpired, TargetNotFound

from .channel import RequestChannel

logger = logging.getLogger("scene-pilot")

VIEWPORT = {"width": 1920, "height": 1080}

# Injected before any page script runs. The page exposes its scene runtime as
# window.__sceneRuntime (findObjectByName / setVariable / emitEvent); replies
# flow back through the __scenePilotReply binding keyed by correlation id.
_BRIDGE_SCRIPT = """
(() => {
  if (window.__scenePilot) return;
  const runtime = () => window.__sceneRuntime || null;
  const find = (name) => {
    const rt = runtime();
    if (!rt) throw Object.assign(new Error('Scene runtime not loaded'), {code: 'not_ready'});
    return rt.findObjectByName(name) || null;
  };
  const ops = {
    find_by_name: ({name}) => {
      const obj = find(name);
      return obj ? {found: true, name: obj.name || name} : {found: false, name};
    },
    set_property: ({name, property, value}) => {
      const obj = find(name);
      if (!obj) throw Object.assign(new Error('Object not found: ' + name), {code: 'target_not_found'});
      if (property === 'visible') {
        obj.visible = Boolean(value);
      } else if (obj[property] && typeof obj[property].set === 'function') {
        obj[property].set(value.x, value.y, value.z);
      } else if (obj[property]) {
        obj[property].x = value.x; obj[property].y = value.y; obj[property].z = value.z;
      } else {
        throw new Error('Cannot set property: ' + property);
      }
      return {object: name, property};
    },
    set_variable: ({name, value}) => { runtime().setVariable(name, value); return {variable: name}; },
    emit_event: ({event, payload}) => { runtime().emitEvent(event, payload); return {event}; },
  };
  window.__scenePilot = {
    ready: () => !!runtime() && !!document.querySelector('canvas'),
    dispatch: async (cid, op, args) => {
      try {
        if (!ops[op]) throw new Error('Unknown operation: ' + op);
        const result = await ops[op](args || {});
        window.__scenePilotReply(cid, {ok: true, result});
      } catch (e) {
        window.__scenePilotReply(cid, {ok: false, error: String(e && e.message || e), code: e && e.code || null});
      }
    },
  };
})();
"""

_CLOSED_MARKERS = ("closed", "crashed", "detached", "disconnected")


class SceneHandle(ABC):
    """Operations a FULL session needs from the live scene."""

    session_id: str | None = None

    @property
    @abstractmethod
    def target_ref(self) -> str: ...

    @property
    @abstractmethod
    def is_closed(self) -> bool: ...

    @abstractmethod
    async def find_by_name(self, name: str) -> bool: ...

    @abstractmethod
    async def set_property(self, name: str, prop: str, value: Any) -> None: ...

    @abstractmethod
    async def set_variable(self, name: str, value: Any) -> None: ...

    @abstractmethod
    async def emit_event(self, event: str, payload: Any = None) -> None: ...

    @abstractmethod
    async def screenshot(self) -> str:
        """Return a base64-encoded PNG of the current viewport."""

    @abstractmethod
    async def wait_for_ready(self, timeout: float) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...


class PlaywrightSceneHandle(SceneHandle):
    def __init__(self, target_ref: str, playwright, browser, context, page):
        self._target_ref = target_ref
        self._playwright = playwright
        self._browser = browser
        self._context = context
        self._page = page
        self._channel = RequestChannel(timeout=cfg.bridge_timeout)
        self._closed = False

    @classmethod
    async def open(
        cls,
        target_ref: str,
        *,
        ready_timeout: float | None = None,
        headless: bool | None = None,
    ) -> "PlaywrightSceneHandle":
        """Launch Chromium, load ``target_ref`` and wait until the scene is ready.

        Raises SceneLoadTimeout if the canvas and runtime do not appear in time.
        """
        ready_timeout = ready_timeout if ready_timeout is not None else cfg.scene_ready_timeout
        headless = cfg.headless if headless is None else headless

        playwright = await async_playwright().start()
        browser = await playwright.chromium.launch(headless=headless)
        context = await browser.new_context(viewport=VIEWPORT)
        page = await context.new_page()
        handle = cls(target_ref, playwright, browser, context, page)
        try:
            await page.expose_binding("__scenePilotReply", handle._on_reply)
            await page.add_init_script(_BRIDGE_SCRIPT)
            page.on("close", lambda _page: handle._on_page_closed())
            logger.info("Loading scene %s", target_ref)
            try:
                await page.goto(target_ref, wait_until="networkidle", timeout=ready_timeout * 1000)
            except PlaywrightTimeoutError as exc:
                raise SceneLoadTimeout(target_ref, ready_timeout) from exc
            await handle.wait_for_ready(ready_timeout)
        except BaseException:
            await handle.close()
            raise
        logger.info("Scene ready: %s", target_ref)
        return handle

    @property
    def target_ref(self) -> str:
        return self._target_ref

    @property
    def is_closed(self) -> bool:
        return self._closed or self._page.is_closed()

    def _expired(self, reason: str) -> SessionExpired:
        return SessionExpired(self.session_id or self._target_ref, reason)

    def _on_reply(self, _source, cid: str, payload: dict[str, Any]) -> None:
        self._channel.resolve(cid, payload)

    def _on_page_closed(self) -> None:
        logger.warning("Scene page closed: %s", self._target_ref)
        self._channel.fail_all(self._expired("page closed"))

    async def _call(self, op: str, args: dict[str, Any]) -> Any:
        if self.is_closed:
            raise self._expired("page closed")

        async def _send(cid: str) -> None:
            await self._page.evaluate(
                "([cid, op, args]) => { window.__scenePilot.dispatch(cid, op, args); }",
                [cid, op, args],
            )

        try:
            reply = await self._channel.request(_send, op=op)
        except PlaywrightError as exc:
            if self.is_closed or any(marker in str(exc).lower() for marker in _CLOSED_MARKERS):
                raise self._expired(str(exc)) from exc
            raise SceneOperationError(f"{op} failed: {exc}", op=op) from exc

        if not isinstance(reply, dict) or not reply.get("ok"):
            error = (reply or {}).get("error") if isinstance(reply, dict) else str(reply)
            if isinstance(reply, dict) and reply.get("code") == "target_not_found":
                raise TargetNotFound(args.get("name", ""))
            raise SceneOperationError(f"{op} failed: {error}", op=op)
        return reply.get("result")

    async def find_by_name(self, name: str) -> bool:
        result = await self._call("find_by_name", {"name": name})
        return bool(result and result.get("found"))

    async def set_property(self, name: str, prop: str, value: Any) -> None:
        await self._call("set_property", {"name": name, "property": prop, "value": value})

    async def set_variable(self, name: str, value: Any) -> None:
        await self._call("set_variable", {"name": name, "value": value})

    async def emit_event(self, event: str, payload: Any = None) -> None:
        await self._call("emit_event", {"event": event, "payload": payload})

    async def screenshot(self) -> str:
        if self.is_closed:
            raise self._expired("page closed")
        try:
            data = await self._page.screenshot(type="png")
        except PlaywrightError as exc:
            if self.is_closed:
                raise self._expired(str(exc)) from exc
            raise SceneOperationError(f"screenshot failed: {exc}", op="screenshot") from exc
        return base64.b64encode(data).decode("ascii")

    async def wait_for_ready(self, timeout: float) -> None:
        try:
            await self._page.wait_for_selector("canvas", timeout=timeout * 1000)
            await self._page.wait_for_function(
                "() => window.__scenePilot && window.__scenePilot.ready()",
                timeout=timeout * 1000,
            )
        except PlaywrightTimeoutError as exc:
            raise SceneLoadTimeout(self._target_ref, timeout) from exc

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._channel.fail_all(self._expired("session closed"))
        for resource in (self._context, self._browser):
            try:
                await resource.close()
            except PlaywrightError:
                logger.debug("Error closing browser resource", exc_info=True)
        try:
            await self._playwright.stop()
        except PlaywrightError:
            logger.debug("Error stopping playwright", exc_info=True)
        logger.info("Released scene handle for %s", self._target_ref)
