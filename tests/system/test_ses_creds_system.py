import importlib
import sys

import pytest

EXAMPLE_SECRET = "wJalrXUtnFEMI/K7MDENG/bPxRfiCYEXAMPLEKEY"


def _handler_module():
    if "lambda" not in sys.path:
        sys.path.insert(0, "lambda")
    import ses_creds_handler as module

    return importlib.reload(module)


def _request(m, request_type: str, parameter_type: str, key: str = ""):
    return m.CredentialRequest(request_type=request_type, parameter_type=parameter_type, key=key)


def test_lifecycle_against_live_parameter_store(system_env, system_session, system_prefix):
    m = _handler_module()
    import smtp_signature

    if system_env.aws_region not in smtp_signature.SMTP_REGIONS:
        pytest.skip(f"{system_env.aws_region} has no SES SMTP endpoint")

    ssm = system_session.client("ssm")
    config = m.HandlerConfig(region=system_env.aws_region, parameter_prefix=system_prefix)
    h = m.SesCredsHandler(config, ssm_client=ssm, sts_client=system_session.client("sts"))
    account = system_session.client("sts").get_caller_identity()["Account"]

    first = h.handle(_request(m, "Create", "password", EXAMPLE_SECRET))
    second = h.handle(_request(m, "Update", "password", EXAMPLE_SECRET))

    assert first.ok, first.message
    assert first.physical_resource_id == second.physical_resource_id
    assert f":{account}:parameter{system_prefix}/password" in first.physical_resource_id

    stored = ssm.get_parameter(Name=f"{system_prefix}/password", WithDecryption=True)["Parameter"]
    assert stored["Type"] == "SecureString"
    assert stored["Value"] == m.derive_smtp_password(EXAMPLE_SECRET, system_env.aws_region)

    deleted = h.handle(_request(m, "Delete", "password"))
    deleted_again = h.handle(_request(m, "Delete", "password"))

    assert deleted.outcome == "success"
    assert deleted_again.outcome == "already_absent"
    assert deleted.physical_resource_id == first.physical_resource_id


def test_deployed_stack_parameters_hold_smtp_credentials(system_env, system_session):
    if not system_env.stack_name:
        pytest.skip("set SYSTEM_STACK_NAME to check a deployed SesCredsStack")

    cfn = system_session.client("cloudformation")
    desc = cfn.describe_stacks(StackName=system_env.stack_name)["Stacks"][0]
    outputs = {o["OutputKey"]: o["OutputValue"] for o in desc.get("Outputs", [])}

    ssm = system_session.client("ssm")
    username = ssm.get_parameter(Name=outputs["SmtpUsernameParameterName"], WithDecryption=True)
    password = ssm.get_parameter(Name=outputs["SmtpPasswordParameterName"], WithDecryption=True)

    assert username["Parameter"]["Value"].startswith("AKIA")
    assert len(password["Parameter"]["Value"]) == 44
    assert outputs["SmtpEndpoint"] == f"email-smtp.{system_env.aws_region}.amazonaws.com"
