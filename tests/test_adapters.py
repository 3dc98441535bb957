"""Tests for the platform adapters and the adapter factory."""

from typing import Any

import pytest
from fakes import FakeClock, FakeElement, FakeResponse, dom_element

from chatharvest.platforms import KNOWN_PLATFORMS, AdapterFactory
from chatharvest.platforms.base import (
    DEFAULT_CONFIG_PATH,
    GenericAdapter,
    HarvestConfig,
    LoginFailure,
    LoginState,
    NavigationFailure,
    PlatformConfigManager,
    ReferenceSource,
)
from chatharvest.platforms.deepseek import DeepseekAdapter
from chatharvest.platforms.doubao import DoubaoAdapter
from chatharvest.platforms.kimi import KimiAdapter
from chatharvest.platforms.qwen import QwenAdapter
from chatharvest.platforms.wenxin import WenxinAdapter
from chatharvest.platforms.yuanbao import YuanbaoAdapter


@pytest.fixture(scope="module")
def shipped() -> PlatformConfigManager:
    return PlatformConfigManager.from_file(DEFAULT_CONFIG_PATH)


def make_adapter(adapter_class, manager, platform_id, page, clock=None):
    return adapter_class(manager.get_profile(platform_id), page, clock or FakeClock())


def link(text, href, **attrs):
    return dom_element("a", text, href=href, **attrs)


class TestAdapterFactory:
    """Test cases for AdapterFactory."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "platform_id,expected",
        [
            ("deepseek", DeepseekAdapter),
            ("doubao", DoubaoAdapter),
            ("kimi", KimiAdapter),
            ("qwen", QwenAdapter),
            ("wenxin", WenxinAdapter),
            ("yuanbao", YuanbaoAdapter),
            ("testsite", GenericAdapter),
        ],
    )
    def test_adapter_class(self, platform_id, expected):
        assert AdapterFactory.get_adapter_class(platform_id) is expected

    @pytest.mark.unit
    def test_available_platforms(self):
        assert set(KNOWN_PLATFORMS) <= set(AdapterFactory.get_available_platforms())

    @pytest.mark.unit
    def test_create_adapter_binds_profile(self, config_manager, fake_page, fake_clock):
        adapter = AdapterFactory.create_adapter(
            config_manager.get_profile("testsite"), fake_page, fake_clock
        )

        assert isinstance(adapter, GenericAdapter)
        assert adapter.platform_id == "testsite"
        assert adapter.name == "TestSite"
        assert adapter.clock is fake_clock


class TestLogin:
    """Test cases for the login flow shared by all adapters."""

    @pytest.mark.asyncio
    async def test_already_logged_in(self, config_manager, fake_page):
        fake_page.set("textarea", FakeElement())
        adapter = make_adapter(GenericAdapter, config_manager, "testsite", fake_page)

        assert await adapter.handle_login()
        assert adapter.login_history == [
            LoginState.UNKNOWN,
            LoginState.CHECKING_UI,
            LoginState.LOGGED_IN,
        ]

    @pytest.mark.asyncio
    async def test_login_button_means_logged_out(self, config_manager, fake_page):
        fake_page.set("textarea", FakeElement())
        fake_page.set("button.login", FakeElement("登录"))
        adapter = make_adapter(GenericAdapter, config_manager, "testsite", fake_page)

        assert not await adapter.is_logged_in()

    @pytest.mark.asyncio
    async def test_manual_login_detected(self, config_manager, fake_page):
        """Test that a login completed by a person ends the wait."""
        fake_page.set("button.login", FakeElement("登录"))

        def user_logs_in(now):
            if now >= 2:
                fake_page.remove("button.login")
                fake_page.set("textarea", FakeElement())

        clock = FakeClock(on_sleep=user_logs_in)
        adapter = make_adapter(GenericAdapter, config_manager, "testsite", fake_page, clock)

        assert await adapter.handle_login()
        assert adapter.login_history[-2:] == [
            LoginState.AWAITING_MANUAL_LOGIN,
            LoginState.LOGGED_IN,
        ]
        assert clock.now == pytest.approx(2.0)

    @pytest.mark.asyncio
    async def test_manual_login_timeout(self, config_manager, fake_page):
        fake_page.set("button.login", FakeElement("登录"))
        clock = FakeClock()
        adapter = make_adapter(GenericAdapter, config_manager, "testsite", fake_page, clock)

        assert not await adapter.handle_login()
        assert adapter.login_history[-1] is LoginState.LOGIN_FAILED
        assert clock.now == pytest.approx(3.0)

    @pytest.mark.asyncio
    async def test_injection_failure_terminal_without_manual_login(
        self, sample_config_dict, temp_dir, fake_page, monkeypatch
    ):
        """Test that a rejected credential fails fast when manual login is off."""
        sample_config_dict["platforms"]["testsite"]["auth"]["allow_manual_login"] = False
        manager = PlatformConfigManager(
            HarvestConfig(**sample_config_dict, project_root=temp_dir)
        )
        monkeypatch.setenv("TESTSITE_COOKIES", "sid=expired")
        fake_page.set("button.login", FakeElement("登录"))
        clock = FakeClock()
        adapter = make_adapter(GenericAdapter, manager, "testsite", fake_page, clock)

        assert not await adapter.handle_login()
        assert adapter.login_history == [
            LoginState.UNKNOWN,
            LoginState.CHECKING_UI,
            LoginState.INJECTING_CREDENTIALS,
            LoginState.LOGIN_FAILED,
        ]
        assert clock.sleeps == [3.0]
        assert fake_page.context.added_cookies[0]["domain"] == ".chat.example.com"

    @pytest.mark.asyncio
    async def test_kimi_token_written_before_cookies(self, shipped, fake_page, monkeypatch):
        """Test Kimi's storage-first injection order and token keys."""
        monkeypatch.setenv("KIMI_TOKEN", "tok")
        monkeypatch.setenv("KIMI_COOKIES", "sid=abc")
        monkeypatch.setenv("KIMI_LOCAL_STORAGE", '{"theme": "dark"}')
        login_button = 'button:text-is("登录")'
        fake_page.set(login_button, FakeElement("登录"))

        def after_reload(page):
            page.remove(login_button)
            page.set('div[contenteditable="true"]', FakeElement())

        fake_page.on_reload = after_reload
        adapter = make_adapter(KimiAdapter, shipped, "kimi", fake_page)

        assert await adapter.handle_login()
        assert fake_page.local_storage == {
            "theme": "dark",
            "access_token": "tok",
            "refresh_token": "tok",
        }
        kinds = [event[0] for event in fake_page.events]
        assert kinds.index("clear_cookies") < kinds.index("local_storage")
        assert kinds.index("local_storage") < kinds.index("add_cookies")
        assert kinds.index("add_cookies") < kinds.index("reload")
        assert adapter.login_history[-1] is LoginState.LOGGED_IN

    @pytest.mark.asyncio
    async def test_doubao_cookies_for_both_domains(self, shipped, fake_page):
        adapter = make_adapter(DoubaoAdapter, shipped, "doubao", fake_page)

        injected = await adapter.inject_cookies("sid=abc; uid=1")

        assert injected == 4
        domains = {c["domain"] for c in fake_page.context.added_cookies}
        assert domains == {".doubao.com", "www.doubao.com"}

    @pytest.mark.asyncio
    async def test_deepseek_token_after_sign_in_page(self, shipped, fake_page, monkeypatch):
        monkeypatch.setenv("DEEPSEEK_USER_TOKEN", "user-token")
        adapter = make_adapter(DeepseekAdapter, shipped, "deepseek", fake_page)

        written = await adapter.write_local_storage(adapter.profile.auth.resolve())

        assert written == 1
        assert fake_page.events == [
            ("goto", "https://chat.deepseek.com/sign_in"),
            ("local_storage", {"userToken": "user-token"}),
        ]

    @pytest.mark.asyncio
    async def test_network_confirmation(self, shipped, fake_page, monkeypatch):
        """Test that an authenticated API call confirms the login."""
        monkeypatch.setenv("QWEN_COOKIES", "sid=abc")
        fake_page.set('.login-btn, text="登录"', FakeElement("登录"))
        fake_page.responses = [
            FakeResponse("https://tongyi.aliyun.com/api/v1/session", status=200)
        ]
        adapter = make_adapter(QwenAdapter, shipped, "qwen", fake_page)

        assert await adapter.handle_login()
        assert len(fake_page.context.added_cookies) == 2

    @pytest.mark.asyncio
    async def test_network_error_status_is_not_confirmation(
        self, shipped, fake_page, monkeypatch
    ):
        monkeypatch.setenv("QWEN_COOKIES", "sid=abc")
        fake_page.set('.login-btn, text="登录"', FakeElement("登录"))
        fake_page.responses = [FakeResponse("https://tongyi.aliyun.com/api/v1/session", 401)]
        adapter = make_adapter(QwenAdapter, shipped, "qwen", fake_page)

        assert not await adapter.reload_and_verify()


class TestSubmission:
    """Test cases for query submission."""

    @pytest.mark.asyncio
    async def test_generic_clicks_visible_submit(self, config_manager, fake_page):
        fake_page.set("textarea", FakeElement())
        fake_page.set("button.send", FakeElement())
        adapter = make_adapter(GenericAdapter, config_manager, "testsite", fake_page)

        await adapter.send_query("hello")

        assert fake_page.events == [
            ("fill", "textarea", "hello"),
            ("click", "button.send", False),
        ]

    @pytest.mark.asyncio
    async def test_generic_presses_enter_without_submit(self, config_manager, fake_page):
        fake_page.set("textarea", FakeElement())
        fake_page.set("button.send", FakeElement(visible=False))
        adapter = make_adapter(GenericAdapter, config_manager, "testsite", fake_page)

        await adapter.send_query("hello")

        assert fake_page.events[-1] == ("press", "textarea", "Enter")

    @pytest.mark.asyncio
    async def test_enter_first_with_backup_click(self, shipped, fake_page):
        """Test that a submit click follows when Enter left the input filled."""
        profile = shipped.get_profile("wenxin")
        fake_page.set(profile.selectors.input, FakeElement())
        fake_page.set(profile.selectors.submit, FakeElement())
        fake_page.enter_submits = False
        clock = FakeClock()
        adapter = WenxinAdapter(profile, fake_page, clock)

        await adapter.send_query("你好")

        assert fake_page.events == [
            ("fill", profile.selectors.input, "你好"),
            ("keyboard", "Enter"),
            ("click", profile.selectors.submit, True),
        ]
        assert clock.sleeps == [2.0]

    @pytest.mark.asyncio
    async def test_enter_first_without_backup(self, shipped, fake_page):
        profile = shipped.get_profile("doubao")
        fake_page.set(profile.selectors.input, FakeElement())
        fake_page.set(profile.selectors.submit, FakeElement())
        adapter = DoubaoAdapter(profile, fake_page, FakeClock())

        await adapter.send_query("你好")

        assert not any(event[0] == "click" for event in fake_page.events)

    @pytest.mark.asyncio
    async def test_yuanbao_login_modal_raises(self, shipped, fake_page):
        profile = shipped.get_profile("yuanbao")
        fake_page.set(profile.selectors.input, FakeElement())
        fake_page.set(profile.selectors.login_modal, FakeElement())
        adapter = YuanbaoAdapter(profile, fake_page, FakeClock())

        with pytest.raises(LoginFailure):
            await adapter.send_query("你好")

    @pytest.mark.asyncio
    async def test_popups_dismissed_on_navigate(self, shipped, fake_page):
        popup = FakeElement()
        fake_page.set(".semi-modal-close", popup)
        clock = FakeClock()
        adapter = make_adapter(DoubaoAdapter, shipped, "doubao", fake_page, clock)

        await adapter.navigate()

        assert popup.clicks == 1
        assert clock.sleeps == [0.5]
        assert fake_page.events[0] == ("goto", "https://www.doubao.com/chat/")

    @pytest.mark.asyncio
    async def test_open_url_raises_navigation_failure(self, shipped, fake_page):
        fake_page.fail_on["goto"] = RuntimeError("net::ERR_NAME_NOT_RESOLVED")
        adapter = make_adapter(DoubaoAdapter, shipped, "doubao", fake_page)

        with pytest.raises(NavigationFailure, match="Could not load"):
            await adapter.open_url("https://www.doubao.com/chat/")

        await adapter.navigate()


class FlakyAdapter(GenericAdapter):
    """Generic adapter whose reference steps can be told to fail."""

    search: list[dict[str, Any]] = []
    explicit_error: Exception | None = None

    async def extract_search_results(self):
        return self.search

    async def extract_explicit_references(self):
        if self.explicit_error is not None:
            raise self.explicit_error
        return await super().extract_explicit_references()


class TestExtraction:
    """Test cases for answer and reference extraction."""

    @pytest.mark.asyncio
    async def test_failed_references_are_distinct_from_none(self, config_manager, fake_page):
        fake_page.set("div.answer", FakeElement("The answer"))
        adapter = make_adapter(FlakyAdapter, config_manager, "testsite", fake_page)
        adapter.explicit_error = RuntimeError("Execution context was destroyed")

        result = await adapter.extract_response()

        assert result.text == "The answer"
        assert result.references == []
        assert result.reference_source is ReferenceSource.FAILED
        assert len(result.errors) == 1
        assert result.errors[0].startswith("references:")

    @pytest.mark.asyncio
    async def test_failed_references_fall_back_to_search_results(
        self, config_manager, fake_page
    ):
        fake_page.set("div.answer", FakeElement("The answer"))
        adapter = make_adapter(FlakyAdapter, config_manager, "testsite", fake_page)
        adapter.search = [{"title": "S", "url": "https://s.example.org/1"}]
        adapter.explicit_error = RuntimeError("boom")

        result = await adapter.extract_response()

        assert result.reference_source is ReferenceSource.SEARCH_RESULTS
        assert [r.url for r in result.references] == ["https://s.example.org/1"]

    @pytest.mark.asyncio
    async def test_response_links_exclude_own_host(self, config_manager, fake_page):
        fake_page.set("div.answer", FakeElement("The answer"))
        fake_page.snapshots[("div.answer", 0)] = {
            "root": dom_element(
                "div",
                children=[
                    link("Wiki", "https://en.wikipedia.org/wiki/Coffee"),
                    link("Share", "https://chat.example.com/share/1"),
                ],
            ),
            "anchorPath": [],
        }
        adapter = make_adapter(GenericAdapter, config_manager, "testsite", fake_page)

        result = await adapter.extract_response()

        assert result.reference_source is ReferenceSource.EXPLICIT
        assert [r.domain for r in result.references] == ["en.wikipedia.org"]

    @pytest.mark.asyncio
    async def test_wait_for_response_none_when_missing(self, config_manager, fake_page):
        adapter = make_adapter(GenericAdapter, config_manager, "testsite", fake_page)

        assert await adapter.wait_for_response(timeout=5) is None

    @pytest.mark.asyncio
    async def test_qwen_citations(self, shipped, fake_page):
        profile = shipped.get_profile("qwen")
        citations = [
            FakeElement("[1] Alpha", attrs={"href": "https://alpha.com/1"}),
            FakeElement("Beta", children={"a": [FakeElement(attrs={"href": "https://beta.com"})]}),
            FakeElement("No link"),
        ]
        fake_page.set(
            profile.selectors.response,
            FakeElement("Answer", children={profile.selectors.citation: citations}),
        )
        adapter = QwenAdapter(profile, fake_page, FakeClock())

        result = await adapter.extract_response()

        assert result.reference_source is ReferenceSource.EXPLICIT
        assert [(r.title, r.url) for r in result.references] == [
            ("Alpha", "https://alpha.com/1"),
            ("Beta", "https://beta.com"),
        ]

    @pytest.mark.asyncio
    async def test_deepseek_side_panel_search_results(self, shipped, fake_page):
        """Test toggle expansion and card parsing of the right-hand panel."""
        profile = shipped.get_profile("deepseek")
        response = profile.selectors.response
        fake_page.set(response, FakeElement("推荐几款咖啡机"))
        fake_page.snapshots[(response, 4)] = {
            "root": dom_element(
                "div",
                children=[
                    dom_element("div", children=[dom_element("span", "已阅读 8 个网页")]),
                    dom_element("div", "推荐几款咖啡机", cls="ds-markdown"),
                ],
            ),
            "anchorPath": [1],
        }
        fake_page.snapshots[("body", 0)] = {
            "root": dom_element(
                "body",
                children=[
                    dom_element("div", cls="chat", rect=(0, 0, 800, 900)),
                    dom_element(
                        "div",
                        cls="side",
                        rect=(900, 0, 380, 900),
                        children=[
                            dom_element(
                                "div",
                                children=[
                                    dom_element("span", "知乎 · 3天前"),
                                    link("咖啡机选购指南", "https://zhuanlan.zhihu.com/p/1", target="_blank"),
                                ],
                            ),
                            dom_element(
                                "div",
                                children=[
                                    dom_element("span", "什么值得买"),
                                    link("2024 咖啡机推荐", "https://post.smzdm.com/p/2", target="_blank"),
                                ],
                            ),
                        ],
                    ),
                ],
            ),
            "anchorPath": [],
            "viewportWidth": 1280,
        }
        clock = FakeClock()
        adapter = DeepseekAdapter(profile, fake_page, clock)

        records = await adapter.extract_search_results()

        assert records == [
            {"source": "知乎", "title": "咖啡机选购指南", "url": "https://zhuanlan.zhihu.com/p/1"},
            {"source": "什么值得买", "title": "2024 咖啡机推荐", "url": "https://post.smzdm.com/p/2"},
        ]
        assert ("click_path", response, (0, 0)) in fake_page.events
        assert clock.sleeps == [1.5]

        result = await adapter.extract_response()
        assert result.reference_source is ReferenceSource.SEARCH_RESULTS
        assert [r.domain for r in result.references] == ["zhuanlan.zhihu.com", "post.smzdm.com"]

    @pytest.mark.asyncio
    async def test_deepseek_without_toggle(self, shipped, fake_page):
        adapter = make_adapter(DeepseekAdapter, shipped, "deepseek", fake_page)

        assert await adapter.extract_search_results() == []

    @pytest.mark.asyncio
    async def test_kimi_widens_to_reference_container(self, shipped, fake_page):
        """Test that Kimi reads the ancestor holding the reference list."""
        profile = shipped.get_profile("kimi")
        response = profile.selectors.response
        tree = dom_element(
            "section",
            children=[
                dom_element("div", children=[dom_element("div", "answer body", cls="markdown")]),
                dom_element(
                    "div",
                    children=[
                        dom_element("span", "参考资料"),
                        link("百度百科", "https://baike.baidu.com/item/x"),
                        link("分享", "https://www.kimi.com/share/1"),
                    ],
                ),
            ],
        )
        fake_page.snapshots[(response, 2)] = {"root": tree, "anchorPath": [0, 0]}
        fake_page.ancestors[(response, 2)] = {
            "text": "answer body\n参考资料 百度百科",
            "html": "<section>...</section>",
        }
        adapter = KimiAdapter(profile, fake_page, FakeClock())

        result = await adapter.extract_response()

        assert adapter.response_hops == 2
        assert result.text == "answer body\n参考资料 百度百科"
        assert result.raw_html == "<section>...</section>"
        assert result.reference_source is ReferenceSource.EXPLICIT
        assert [r.url for r in result.references] == ["https://baike.baidu.com/item/x"]

    @pytest.mark.asyncio
    async def test_yuanbao_links_and_reference_lists(self, shipped, fake_page):
        profile = shipped.get_profile("yuanbao")
        response = profile.selectors.response
        fake_page.set(response, FakeElement("answer"))
        fake_page.snapshots[(response, 0)] = {
            "root": dom_element(
                "div",
                cls="answer-content",
                children=[
                    dom_element("p", "answer"),
                    link("Long external article title", "https://news.example.com/a"),
                    link("short", "https://b.com"),
                    link("Yuanbao internal page", "https://yuanbao.tencent.com/x"),
                    dom_element(
                        "ul",
                        children=[
                            dom_element(
                                "li",
                                children=[
                                    dom_element("span", "[1] Source one"),
                                    link("link", "https://one.com"),
                                ],
                            ),
                            dom_element("li", children=[link("two", "https://two.com")]),
                        ],
                    ),
                ],
            ),
            "anchorPath": [],
        }
        adapter = YuanbaoAdapter(profile, fake_page, FakeClock())

        search = await adapter.extract_search_results()
        explicit = await adapter.extract_explicit_references()

        assert search == [
            {
                "title": "Long external article title",
                "url": "https://news.example.com/a",
                "source": "Yuanbao",
            }
        ]
        assert explicit == [
            {"title": "Source one link", "url": "https://one.com"},
            {"title": "two", "url": "https://two.com"},
        ]
