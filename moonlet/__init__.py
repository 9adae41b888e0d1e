from moonlet.moonlet_runtime import ScriptRunner, ExecutionResult, MoonletHost, StdLib, host_api
from moonlet.moonlet_datatypes import Environment, MultiValue, LuaFunction

__all__ = [
    "ScriptRunner", "ExecutionResult", "MoonletHost", "StdLib", "host_api",
    "Environment", "MultiValue", "LuaFunction",
]
