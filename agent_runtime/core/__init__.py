"""
Ядро runtime: конфигурация, ошибки и AgentRuntime.
"""
