# dinoscan/cores/factory.py
from typing import List, Optional

from dinoscan.cores.config import Settings, get_settings
from dinoscan.engines.ark_engine import ArkEngine
from dinoscan.errors import MisconfiguredError


class EngineFactory:
    def missing_settings(self, env: Settings) -> List[str]:
        missing = []
        if not env.ARK_API_KEY.strip():
            missing.append("ARK_API_KEY")
        if not env.ARK_MODEL.strip():
            missing.append("ARK_MODEL")
        return missing

    def resolve_engine(self, env: Optional[Settings] = None) -> ArkEngine:
        """
        Build the upstream engine from the current environment.

        Missing credentials are a deployment problem, so they raise
        MisconfiguredError (500) instead of a request error.
        """
        env = env or get_settings()
        missing = self.missing_settings(env)
        if missing:
            raise MisconfiguredError(
                f"缺少环境变量 {', '.join(missing)}。请在部署环境中配置 ARK_API_KEY 与 ARK_MODEL，然后重新部署。",
                missing=missing,
            )
        return ArkEngine(
            api_key=env.ARK_API_KEY.strip(),
            model=env.ARK_MODEL.strip(),
            base_url=env.ARK_BASE_URL.strip(),
        )
