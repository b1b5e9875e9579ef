"""
Custom exceptions for BuildGraph Navigator
"""

class BuildGraphNavigatorError(Exception):
    """Base exception for BuildGraph Navigator"""
    pass

class ScriptReadError(BuildGraphNavigatorError):
    """Exception raised when a script file cannot be read"""
    def __init__(self, path: str, message: str):
        self.path = path
        self.message = message
        super().__init__(f"Could not read script {path}: {message}")

class IncludeNotFoundError(BuildGraphNavigatorError):
    """Exception raised when an <Include Script="..."> target does not exist"""
    def __init__(self, path: str, including_file: str = None):
        self.path = path
        self.including_file = including_file
        super().__init__(f"Include file not found: {path}")

class InvalidPositionError(BuildGraphNavigatorError):
    """Exception raised when a line/character position is outside a document"""
    def __init__(self, line: int, character: int, file_path: str = None):
        self.line = line
        self.character = character
        self.file_path = file_path
        if file_path:
            super().__init__(f"Position {line}:{character} is outside {file_path}")
        else:
            super().__init__(f"Position {line}:{character} is outside the document")

class ConfigurationError(BuildGraphNavigatorError):
    """Exception raised when configuration values are invalid"""
    def __init__(self, setting: str, message: str):
        self.setting = setting
        self.message = message
        super().__init__(f"Invalid setting {setting}: {message}")

class ToolCallError(BuildGraphNavigatorError):
    """Exception raised when MCP server operations fail"""
    def __init__(self, operation: str, message: str):
        self.operation = operation
        self.message = message
        super().__init__(f"MCP server {operation} failed: {message}")
