__all__ = [
	"ViewConfig",
	"Source",
	"HostCallbacks",
	"ConfigError",
	"load_config",
	"config_from_dict",
	"DeepLinkPolicy",
	"NavigationDecision",
	"ExternalOpener",
	"open_external",
	"DownloadRule",
	"is_download_message_allowed",
	"MessageValidator",
	"MessageValidators",
	"MessageMeta",
	"WebViewMessage",
	"NavigationLifecycle",
	"ViewState",
	"ViewSession",
	"RecordingBridge",
	"RuntimeVersionProbe",
	"version_passes",
	"check_version_gate",
	"get_platform",
	"compile_whitelist",
	"passes_whitelist",
	"event_from_native",
]

from .config import ConfigError, HostCallbacks, Source, ViewConfig, config_from_dict, load_config
from .deeplink import DeepLinkPolicy, ExternalOpener, NavigationDecision, open_external
from .download import DownloadRule, is_download_message_allowed
from .events import event_from_native
from .lifecycle import NavigationLifecycle, ViewState
from .messages import MessageMeta, MessageValidator, MessageValidators, WebViewMessage
from .platforms import get_platform
from .session import RecordingBridge, ViewSession
from .version import RuntimeVersionProbe, check_version_gate, version_passes
from .whitelist import compile_whitelist, passes_whitelist
