"""
Unit tests for `workers/registration/worker_registration.py`.

The registration worker is deterministic (it never calls the completion
service), so these tests drive it directly with hand-built states and an
`InMemoryUserProfileStore`, then assert on the reply, the replaced
registration state and what was persisted.
"""

import os
import unittest

os.environ.setdefault("NEBIUS_API_KEY", "test-key")

from conftest import make_state, registration_memory
from provider_api.mock_client import InMemoryUserProfileStore
from shared.models import (
    CandidateField,
    ControlFlags,
    InterruptedProcess,
    LanguagePreference,
    MemoryContext,
    ProcessType,
    RegistrationState,
    RegistrationStep,
    Stage,
)
from workers import RegistrationWorker
from workers.registration.worker_registration import FIELD_PARSERS
from workers.registration.templates import TEMPLATES

EN = TEMPLATES["en"]


class TestRegistrationWorker(unittest.TestCase):
    """
    Tests for the step machine of the registration worker.

    Each test prepares the memory of a user who is at a given step and sends
    one answer, mirroring exactly what the router hands over during a turn.
    """

    def setUp(self):
        self.profiles = InMemoryUserProfileStore()
        self.worker = RegistrationWorker(self.profiles)

    def _answer(self, text, step, control=None, **fields):
        state = make_state(text, memory=registration_memory(step, **fields),
                           control=control or ControlFlags(), next=Stage.REGISTRATION_WORKER)
        return self.worker.run(state)

    def test_start_asks_for_name(self):
        """A user with no registration state starts at collect_name."""
        result = self.worker.run(make_state("I want to sign up", next=Stage.REGISTRATION_WORKER))

        registration = result.memory.registrationState
        self.assertEqual(registration.step, RegistrationStep.COLLECT_NAME)
        self.assertEqual(result.memory.currentProcess, ProcessType.REGISTRATION)
        self.assertIn(EN["start"], result.messages[-1].content)
        self.assertIn(EN["prompts"]["collect_name"], result.messages[-1].content)
        self.assertEqual(result.next, Stage.OUTPUT_FILTER)

    def test_already_registered_user_is_not_restarted(self):
        result = self.worker.run(make_state("sign me up", isRegistered=True, next=Stage.REGISTRATION_WORKER))
        self.assertEqual(result.messages[-1].content, EN["already_registered"])
        self.assertIsNone(result.memory.registrationState)

    def test_valid_name_is_stored_and_step_advances(self):
        result = self._answer(
            "John Smith", RegistrationStep.COLLECT_NAME,
            control=ControlFlags(candidateField=CandidateField(field="name", value="John Smith")),
        )

        registration = result.memory.registrationState
        self.assertEqual(registration.name, "John Smith")
        self.assertEqual(registration.step, RegistrationStep.COLLECT_EMAIL)
        self.assertEqual(result.messages[-1].content, EN["prompts"]["collect_email"])
        self.assertEqual(self.profiles.find_by_identity(result.userId)["name"], "John Smith")

    def test_names_with_punctuation_are_accepted(self):
        """Hyphens, apostrophes and initials are valid in the answer to the name question."""
        parse_name = FIELD_PARSERS[RegistrationStep.COLLECT_NAME]
        self.assertEqual(parse_name("Jean-Luc Picard"), "Jean-Luc Picard")
        self.assertEqual(parse_name("Sinead O'Connor"), "Sinead O'Connor")
        self.assertEqual(parse_name("Mary J. Blige"), "Mary J. Blige")
        self.assertIsNone(parse_name("what is this?"))

        result = self._answer("Jean-Luc Picard", RegistrationStep.COLLECT_NAME)

        self.assertEqual(result.memory.registrationState.name, "Jean-Luc Picard")
        self.assertEqual(result.memory.registrationState.step, RegistrationStep.COLLECT_EMAIL)

    def test_email_is_lowercased(self):
        result = self._answer("John@Example.COM", RegistrationStep.COLLECT_EMAIL, name="John Smith")
        self.assertEqual(result.memory.registrationState.email, "john@example.com")

    def test_invalid_answer_reprompts_same_step(self):
        """An invalid birthdate keeps the step, marks the state invalid and repeats the question with a hint."""
        result = self._answer("last tuesday", RegistrationStep.COLLECT_BIRTHDATE, name="John Smith")

        registration = result.memory.registrationState
        self.assertEqual(registration.step, RegistrationStep.COLLECT_BIRTHDATE)
        self.assertFalse(registration.isValid)
        self.assertEqual(registration.lastValidationError, EN["invalid"]["collect_birthdate"])
        self.assertIn(EN["prompts"]["collect_birthdate"], result.messages[-1].content)
        self.assertIsNone(self.profiles.find_by_identity(result.userId))

    def test_consent_refusal_keeps_consent_step(self):
        result = self._answer("no", RegistrationStep.COLLECT_CONSENT)
        self.assertEqual(result.memory.registrationState.step, RegistrationStep.COLLECT_CONSENT)
        self.assertIn(EN["consent_required"], result.messages[-1].content)

    def test_confirm_shows_collected_fields(self):
        result = self._answer(
            "yes", RegistrationStep.COLLECT_CONSENT,
            name="John Smith", email="john@example.com", birthDate="1990-05-15", gender="male", country="Brazil",
        )
        reply = result.messages[-1].content
        self.assertEqual(result.memory.registrationState.step, RegistrationStep.CONFIRM)
        self.assertIn("Name: John Smith", reply)
        self.assertIn("Date of birth: 1990-05-15", reply)
        self.assertIn("Country: Brazil", reply)

    def test_confirm_yes_completes_and_marks_registered(self):
        fields = {"name": "John Smith", "email": "john@example.com", "birthDate": "1990-05-15",
                  "gender": "male", "country": "Brazil", "termsAccepted": True}
        self.profiles.create("+5511999990000", fields)

        result = self._answer("yes", RegistrationStep.CONFIRM, **fields)

        self.assertEqual(result.memory.registrationState.step, RegistrationStep.COMPLETED)
        self.assertTrue(result.memory.registrationState.confirmed)
        self.assertEqual(result.memory.currentProcess, ProcessType.GENERAL)
        self.assertTrue(result.isRegistered)
        self.assertEqual(result.messages[-1].content, EN["completed"].format(name="John Smith"))

    def test_confirm_no_restarts(self):
        result = self._answer("no", RegistrationStep.CONFIRM, name="John Smith")

        registration = result.memory.registrationState
        self.assertEqual(registration.step, RegistrationStep.COLLECT_NAME)
        self.assertIsNone(registration.name)
        self.assertIn(EN["restart"], result.messages[-1].content)

    def test_resume_from_snapshot(self):
        """
        A registration paused by another worker is restored from the snapshot,
        the user is welcomed back and asked the question of the paused step.
        """
        paused = RegistrationState(step=RegistrationStep.COLLECT_GENDER, name="John Smith", email="john@example.com")
        memory = MemoryContext(
            currentProcess=ProcessType.DOMAIN_TASK,
            registrationState=paused,
            interruptedProcess=InterruptedProcess(
                type=ProcessType.REGISTRATION,
                returnToStage=Stage.REGISTRATION_WORKER,
                originalStep="collect_gender",
                dataSnapshot=paused.model_dump(mode="json"),
            ),
        )
        result = self.worker.run(make_state("let's continue", memory=memory, next=Stage.REGISTRATION_WORKER))

        self.assertIsNone(result.memory.interruptedProcess)
        self.assertEqual(result.memory.currentProcess, ProcessType.REGISTRATION)
        self.assertEqual(result.memory.registrationState.step, RegistrationStep.COLLECT_GENDER)
        self.assertEqual(result.memory.registrationState.email, "john@example.com")
        self.assertIn(EN["resume"], result.messages[-1].content)
        self.assertIn(EN["prompts"]["collect_gender"], result.messages[-1].content)

    def test_resume_after_declining_exit_reprompts(self):
        result = self._answer("no", RegistrationStep.COLLECT_EMAIL, control=ControlFlags(resumeProcess=True))
        self.assertEqual(result.messages[-1].content, EN["prompts"]["collect_email"])
        self.assertEqual(result.memory.registrationState.step, RegistrationStep.COLLECT_EMAIL)

    def test_portuguese_prompts(self):
        memory = MemoryContext(languagePreference=LanguagePreference(code="pt-BR", name="Portuguese"))
        result = self.worker.run(make_state("quero me cadastrar", memory=memory, next=Stage.REGISTRATION_WORKER))
        self.assertIn(TEMPLATES["pt"]["prompts"]["collect_name"], result.messages[-1].content)

    def test_store_failure_uses_fallback_and_error_handler(self):
        """A profile store error never loses the registration state; the error handler takes over."""
        class BrokenStore(InMemoryUserProfileStore):
            def upsert(self, identity, fields):
                raise RuntimeError("database offline")

        worker = RegistrationWorker(BrokenStore())
        state = make_state("John Smith", memory=registration_memory(), next=Stage.REGISTRATION_WORKER)
        result = worker.run(state)

        self.assertEqual(result.next, Stage.ERROR_HANDLER)
        self.assertIn("database offline", result.control.lastError)
        self.assertEqual(result.memory, state.memory)
        self.assertEqual(result.messages[-1].content, worker.fallback_reply(state))


if __name__ == "__main__":
    unittest.main()
