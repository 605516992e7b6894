class WizardError(Exception):
    """Base class for wizard misuse (wrong step, wrong state, unknown wizard)."""


class UnknownWizardError(WizardError):
    pass


class UnknownStepError(WizardError):
    def __init__(self, step_id):
        super().__init__(f"Unknown step: {step_id}")
        self.step_id = step_id


class StepNotActiveError(WizardError):
    pass
