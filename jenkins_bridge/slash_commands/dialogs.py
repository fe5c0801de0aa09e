"""Interactive dialogs for parameterized builds and job creation."""

from typing import Any, Optional

from jenkins_bridge.jenkins.models import JobParameter

BUILD_DIALOG_CALLBACK = "build_parameters"
CREATE_JOB_DIALOG_CALLBACK = "create_job"

MAX_TEXT_LENGTH = 3000
MAX_TEXTAREA_LENGTH = 150000


def _element_for(parameter: JobParameter) -> dict[str, Any]:
    element: dict[str, Any] = {
        "display_name": parameter.name,
        "name": parameter.name,
        "help_text": parameter.description,
        "optional": True,
    }
    kind = parameter.type

    if kind == "BooleanParameterDefinition":
        element["type"] = "bool"
        element["default"] = "true" if parameter.default else "false"
    elif kind == "ChoiceParameterDefinition" and parameter.choices:
        element["type"] = "select"
        element["options"] = [{"text": c, "value": c} for c in parameter.choices]
        element["default"] = parameter.default or parameter.choices[0]
    elif kind == "TextParameterDefinition":
        element["type"] = "textarea"
        element["default"] = parameter.default or ""
        element["max_length"] = MAX_TEXTAREA_LENGTH
    else:
        element["type"] = "text"
        element["default"] = "" if kind == "PasswordParameterDefinition" else (parameter.default or "")
        element["max_length"] = MAX_TEXT_LENGTH
        if kind == "PasswordParameterDefinition":
            element["subtype"] = "password"
    return element


def build_parameters_dialog(
    job_name: str, parameters: list[JobParameter], state: Optional[str] = None
) -> dict[str, Any]:
    """Dialog asking for the parameters of ``job_name``.

    The job name travels in ``state`` (or the signed ``state`` given) so
    the submission handler knows which job to build.
    """
    return {
        "callback_id": BUILD_DIALOG_CALLBACK,
        "title": "Build parameters",
        "introduction_text": f"Parameters for the job **{job_name}**",
        "elements": [_element_for(p) for p in parameters],
        "submit_label": "Build",
        "notify_on_cancel": False,
        "state": state if state is not None else job_name,
    }


def create_job_dialog(state: str = "") -> dict[str, Any]:
    return {
        "state": state,
        "callback_id": CREATE_JOB_DIALOG_CALLBACK,
        "title": "Create Jenkins job",
        "elements": [
            {
                "display_name": "Job name",
                "name": "job_name",
                "type": "text",
                "help_text": "Use folder/jobname to create the job inside a folder",
                "max_length": MAX_TEXT_LENGTH,
            },
            {
                "display_name": "config.xml",
                "name": "config_xml",
                "type": "textarea",
                "help_text": "Paste the contents of the job's config.xml",
                "max_length": MAX_TEXTAREA_LENGTH,
            },
        ],
        "submit_label": "Create",
        "notify_on_cancel": False,
    }


def submission_to_parameters(submission: Optional[dict[str, Any]]) -> dict[str, str]:
    """Turn dialog values into Jenkins build parameters."""
    parameters = {}
    for name, value in (submission or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        parameters[name] = str(value)
    return parameters
