"""Per-browser driver binaries, command-line flags and session capabilities"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from ..config import BrowserName, WindowSize


@dataclass(frozen=True)
class DriverSpec:
    """How to start one browser's WebDriver server and open a session on it"""

    browser: BrowserName
    binary: str
    browser_name_capability: str
    options_key: str
    # Executable names of the browser process the driver spawns
    process_names: Tuple[str, ...]
    port_flag_separate: bool = False

    def port_args(self, port: str) -> List[str]:
        if self.port_flag_separate:
            return ["--port", str(port)]
        return [f"--port={port}"]

    def browser_args(self, headless: bool, size: Optional[WindowSize]) -> List[str]:
        args: List[str] = []
        if self.browser is BrowserName.FIREFOX:
            if headless:
                args.append("-headless")
            if size is not None:
                args.extend([f"--width={size.width}", f"--height={size.height}"])
            return args

        if headless:
            args.append("--headless=new")
        if size is not None:
            args.append(f"--window-size={size.width},{size.height}")
        return args

    def capabilities(
        self,
        headless: bool,
        size: Optional[WindowSize] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Build a W3C new-session payload"""
        always_match: Dict[str, Any] = {
            "browserName": self.browser_name_capability,
            self.options_key: {"args": self.browser_args(headless, size)},
        }
        if extra:
            always_match.update(extra)
        return {"capabilities": {"alwaysMatch": always_match}}

    def matches_process(self, process_name: str) -> bool:
        name = process_name.lower()
        return any(name == known.lower() for known in self.process_names)


DRIVER_SPECS: Dict[BrowserName, DriverSpec] = {
    BrowserName.CHROME: DriverSpec(
        browser=BrowserName.CHROME,
        binary="chromedriver",
        browser_name_capability="chrome",
        options_key="goog:chromeOptions",
        process_names=(
            "chrome", "chrome.exe", "google-chrome", "Google Chrome",
            "chromium", "chromium-browser", "headless_shell",
        ),
    ),
    BrowserName.FIREFOX: DriverSpec(
        browser=BrowserName.FIREFOX,
        binary="geckodriver",
        browser_name_capability="firefox",
        options_key="moz:firefoxOptions",
        process_names=("firefox", "firefox-bin", "firefox.exe"),
        port_flag_separate=True,
    ),
    BrowserName.EDGE: DriverSpec(
        browser=BrowserName.EDGE,
        binary="msedgedriver",
        browser_name_capability="MicrosoftEdge",
        options_key="ms:edgeOptions",
        process_names=("msedge", "msedge.exe", "Microsoft Edge", "microsoft-edge"),
    ),
}


def get_driver_spec(browser: Union[str, BrowserName]) -> DriverSpec:
    """Look up the driver spec, raising UnsupportedBrowserError if unknown"""
    return DRIVER_SPECS[BrowserName.parse(browser)]
