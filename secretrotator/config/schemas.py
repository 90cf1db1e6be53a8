"""Configuration file schemas for secret-rotator."""

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "backend": {
            "type": "string",
            "enum": ["vault", "aws", "file"],
            "description": "Secret backend used for every command",
        },
        "vault": {
            "type": "object",
            "properties": {
                "address": {
                    "type": "string",
                    "pattern": r"^https?://",
                    "description": "Vault server URL",
                },
                "token": {"type": "string"},
                "mount": {"type": "string", "minLength": 1},
                "timeout_seconds": {"type": "number", "exclusiveMinimum": 0},
                "verify_tls": {"type": "boolean"},
            },
            "additionalProperties": False,
        },
        "aws": {
            "type": "object",
            "properties": {
                "region": {"type": "string", "minLength": 1},
                "profile": {"type": ["string", "null"]},
            },
            "additionalProperties": False,
        },
        "file": {
            "type": "object",
            "properties": {
                "directory": {
                    "type": "string",
                    "minLength": 1,
                    "description": "Base directory for secret files",
                },
            },
            "additionalProperties": False,
        },
        "rotation": {
            "type": "object",
            "properties": {
                "period_months": {"type": "integer", "minimum": 1},
                "secret_length": {"type": "integer", "minimum": 1},
                "field": {"type": "string", "minLength": 1},
                "workers": {"type": "integer", "minimum": 1},
                "timeout_seconds": {
                    "type": ["number", "null"],
                    "exclusiveMinimum": 0,
                    "description": "Per-secret timeout for concurrent batch runs",
                },
            },
            "additionalProperties": False,
        },
        "env_sync": {
            "type": "object",
            "properties": {
                "profiles": {
                    "type": "array",
                    "items": {"type": "string", "minLength": 1},
                    "minItems": 1,
                },
            },
            "additionalProperties": False,
        },
        "targets": {
            "type": "object",
            "description": "Systems whose password follows the rotated secret",
            "properties": {
                "postgres": {
                    "type": "object",
                    "properties": {
                        "host": {"type": "string", "minLength": 1},
                        "port": {"type": "integer", "minimum": 1, "maximum": 65535},
                        "database": {"type": "string", "minLength": 1},
                        "username": {"type": "string", "minLength": 1, "description": "Admin role"},
                        "password_path": {
                            "type": ["string", "null"],
                            "description": "Secret holding the admin password",
                        },
                        "password": {"type": ["string", "null"]},
                        "ssl_mode": {
                            "type": "string",
                            "enum": ["disable", "allow", "prefer", "require", "verify-ca", "verify-full"],
                        },
                        "timeout_seconds": {"type": ["number", "null"], "exclusiveMinimum": 0},
                    },
                    "required": ["host", "database", "username"],
                    "additionalProperties": False,
                },
                "api": {
                    "type": "object",
                    "properties": {
                        "base_url": {"type": "string", "pattern": r"^https?://"},
                        "endpoint": {"type": "string", "minLength": 1},
                        "method": {"type": "string", "pattern": r"(?i)^(get|post|put|patch|delete)$"},
                        "password_field": {"type": "string", "minLength": 1},
                        "username_field": {"type": ["string", "null"]},
                        "additional_fields": {"type": "object", "additionalProperties": {"type": "string"}},
                        "auth_header": {"type": ["string", "null"]},
                        "headers": {"type": "object", "additionalProperties": {"type": "string"}},
                        "timeout_seconds": {"type": "number", "exclusiveMinimum": 0},
                    },
                    "required": ["base_url", "endpoint"],
                    "additionalProperties": False,
                },
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}
