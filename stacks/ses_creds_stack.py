import importlib.util
import os
from pathlib import Path

from aws_cdk import Aws, CfnOutput, Stack, Token
from constructs import Construct

from stacks.ses_creds import SesCreds

SMTP_PORT = 587
LAMBDA_DIR = Path(__file__).resolve().parents[1] / "lambda"


def _smtp_regions() -> tuple[str, ...]:
    # The allow-list lives with the handler asset.
    spec = importlib.util.spec_from_file_location(
        "smtp_signature", LAMBDA_DIR / "smtp_signature.py"
    )
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return tuple(module.SMTP_REGIONS)


class SesCredsStack(Stack):
    def __init__(self, scope: Construct, construct_id: str, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # Environment-agnostic stacks carry a token; the handler checks at deploy time.
        if not Token.is_unresolved(self.region) and self.region not in _smtp_regions():
            raise ValueError(f"The {self.region} region doesn't have an SMTP endpoint.")

        stage_name = os.getenv("STAGE", "prod")
        parameter_prefix = (
            os.getenv("SES_PARAMETER_PREFIX") or f"/ses-creds/{construct_id}/{stage_name}/smtp"
        ).strip().rstrip("/")
        if not parameter_prefix.startswith("/"):
            raise ValueError("SES_PARAMETER_PREFIX must start with '/'")
        key_arn = (os.getenv("SES_KEY_ARN") or "").strip()

        raw_version = (os.getenv("SES_ACCESS_KEY_VERSION") or "1").strip()
        try:
            access_key_version = int(raw_version)
        except ValueError:
            access_key_version = 0
        if access_key_version < 1:
            raise ValueError("SES_ACCESS_KEY_VERSION must be a positive integer")

        creds = SesCreds(
            self,
            "SesCreds",
            parameter_prefix=parameter_prefix,
            key_arn=key_arn or None,
            access_key_version=access_key_version,
        )

        CfnOutput(
            self,
            "SmtpUsernameParameterName",
            value=creds.username_parameter.parameter_name,
            description="SSM SecureString holding the SMTP username.",
        )
        CfnOutput(
            self,
            "SmtpPasswordParameterName",
            value=creds.password_parameter.parameter_name,
            description="SSM SecureString holding the SMTP password.",
        )
        CfnOutput(
            self,
            "SmtpEndpoint",
            value=f"email-smtp.{Aws.REGION}.amazonaws.com",
        )
        CfnOutput(
            self,
            "SmtpPort",
            value=str(SMTP_PORT),
        )
