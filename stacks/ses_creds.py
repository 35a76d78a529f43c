from aws_cdk import (
    CustomResource,
    Duration,
    RemovalPolicy,
    aws_iam as iam,
    aws_kms as kms,
    aws_lambda as _lambda,
    aws_logs as logs,
    aws_ssm as ssm,
    custom_resources as cr,
)
from constructs import Construct, IDependable


class SesCreds(Construct):
    """IAM user whose SMTP username/password are kept in SSM SecureStrings."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        parameter_prefix: str,
        key_arn: str | None = None,
        access_key_version: int = 1,
    ) -> None:
        super().__init__(scope, construct_id)

        smtp_user = iam.User(self, "SmtpUser")
        smtp_user.add_to_policy(
            iam.PolicyStatement(
                effect=iam.Effect.ALLOW,
                actions=["ses:SendRawEmail"],
                resources=["*"],
            )
        )

        # Bumping the serial replaces the key, which re-runs both custom resources.
        smtp_user_access_key = iam.AccessKey(
            self,
            "SmtpUserAccessKey",
            user=smtp_user,
            status=iam.AccessKeyStatus.ACTIVE,
            serial=access_key_version,
        )

        self.username_parameter = ssm.StringParameter.from_secure_string_parameter_attributes(
            self,
            "UsernameParameter",
            parameter_name=f"{parameter_prefix}/username",
        )
        self.password_parameter = ssm.StringParameter.from_secure_string_parameter_attributes(
            self,
            "PasswordParameter",
            parameter_name=f"{parameter_prefix}/password",
        )

        handler_log_group = logs.LogGroup(
            self,
            "HandlerLogGroup",
            retention=logs.RetentionDays.SIX_MONTHS,
            removal_policy=RemovalPolicy.DESTROY,
        )

        fn = _lambda.Function(
            self,
            "Handler",
            runtime=_lambda.Runtime.PYTHON_3_12,
            handler="ses_creds_handler.handler",
            code=_lambda.Code.from_asset("lambda"),
            timeout=Duration.minutes(5),
            log_group=handler_log_group,
            environment={
                "SES_KEY_ARN": key_arn or "",
                "SES_PARAMETER_PREFIX": parameter_prefix,
            },
        )
        fn.add_to_role_policy(
            iam.PolicyStatement(
                effect=iam.Effect.ALLOW,
                actions=["ssm:PutParameter", "ssm:DeleteParameter"],
                resources=[
                    self.username_parameter.parameter_arn,
                    self.password_parameter.parameter_arn,
                ],
            )
        )

        if key_arn:
            kms.Key.from_key_arn(self, "KmsKey", key_arn).grant_encrypt(fn)

        provider = cr.Provider(self, "Provider", on_event_handler=fn)

        username = CustomResource(
            self,
            "Username",
            service_token=provider.service_token,
            properties={
                "Key": smtp_user_access_key.access_key_id,
                "ParameterType": "username",
                "ParameterPrefix": parameter_prefix,
            },
        )
        password = CustomResource(
            self,
            "Password",
            service_token=provider.service_token,
            properties={
                "Key": smtp_user_access_key.secret_access_key.unsafe_unwrap(),
                "ParameterType": "password",
                "ParameterPrefix": parameter_prefix,
            },
        )

        self.dependencies: list[IDependable] = [username, password]
