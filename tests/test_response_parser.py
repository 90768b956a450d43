from unittest import TestCase

from strategist.backend.services.response_parser import (
	DEFAULT_REFUSAL_MESSAGE,
	PLACEHOLDER_QUESTION,
	CannotProceed,
	ClarificationNeeded,
	FullPlan,
	ParseError,
	normalize_question,
	parse_model_response,
)


class QuestionNormalizationTests(TestCase):
	def test_numbered_line_gains_question_mark(self) -> None:
		self.assertEqual(normalize_question("1) what is the budget"), "what is the budget?")

	def test_bold_question_label_stripped(self) -> None:
		self.assertEqual(normalize_question("**Question:** Who is the audience?"), "Who is the audience?")

	def test_bullets_and_letter_markers_stripped(self) -> None:
		self.assertEqual(normalize_question("- a) Which regions matter most."), "Which regions matter most?")
		self.assertEqual(normalize_question("Q3: Is there a launch date"), "Is there a launch date?")

	def test_run_on_sentences_cut_after_last_question_mark(self) -> None:
		self.assertEqual(
			normalize_question("What is the CAC target?? This helps sizing."),
			"What is the CAC target?",
		)

	def test_whitespace_collapsed(self) -> None:
		self.assertEqual(normalize_question("  Who   signs\toff  "), "Who signs off?")

	def test_non_textual_line_dropped(self) -> None:
		self.assertEqual(normalize_question("---"), "")
		self.assertEqual(normalize_question("**"), "")


class ResponseParserTests(TestCase):
	def test_empty_reply_is_parse_error(self) -> None:
		self.assertIsInstance(parse_model_response(""), ParseError)
		self.assertIsInstance(parse_model_response("   \n"), ParseError)
		self.assertIsInstance(parse_model_response(None), ParseError)

	def test_no_tags_is_parse_error(self) -> None:
		outcome = parse_model_response("I think the client needs help.")
		self.assertIsInstance(outcome, ParseError)
		self.assertEqual(outcome.as_dict()["type"], "error")

	def test_full_plan_well_formed(self) -> None:
		raw = (
			"<thinking>Budget and goals present.</thinking>\n"
			"<full_plan>\n<proposal>\n## Goals\nGrow pipeline\n</proposal>\n"
			"<content_strategy>Weekly webinars</content_strategy>\n"
			"<sample_ads>LinkedIn: Try it free</sample_ads>\n</full_plan>"
		)
		outcome = parse_model_response(raw)
		self.assertIsInstance(outcome, FullPlan)
		self.assertEqual(outcome.thinking, "Budget and goals present.")
		self.assertEqual(outcome.proposal, "## Goals\nGrow pipeline")
		self.assertEqual(outcome.content_strategy, "Weekly webinars")
		self.assertEqual(outcome.sample_ads, "LinkedIn: Try it free")
		payload = outcome.as_dict()
		self.assertEqual(payload["type"], "full_plan")
		self.assertEqual(payload["contentStrategy"], "Weekly webinars")
		self.assertEqual(payload["sampleAds"], "LinkedIn: Try it free")

	def test_full_plan_missing_close_tag_recovered(self) -> None:
		outcome = parse_model_response("<full_plan><proposal>A</proposal><content_strategy>B")
		self.assertIsInstance(outcome, FullPlan)
		self.assertEqual(outcome.proposal, "A")
		self.assertEqual(outcome.content_strategy, "B")
		self.assertEqual(outcome.sample_ads, "")

	def test_unclosed_sections_stop_at_next_section_or_outer_close(self) -> None:
		raw = (
			"<full_plan><proposal> First part \n<content_strategy>Second part\n"
			"<sample_ads>Third part</full_plan> trailing chatter"
		)
		outcome = parse_model_response(raw)
		self.assertEqual(outcome.proposal, "First part")
		self.assertEqual(outcome.content_strategy, "Second part")
		self.assertEqual(outcome.sample_ads, "Third part")

	def test_sections_after_full_plan_close_are_ignored(self) -> None:
		raw = (
			"<full_plan><proposal>A</proposal></full_plan>\n"
			"<sample_ads>outside</sample_ads>\n<content_strategy>also outside"
		)
		outcome = parse_model_response(raw)
		self.assertIsInstance(outcome, FullPlan)
		self.assertEqual(outcome.proposal, "A")
		self.assertEqual(outcome.content_strategy, "")
		self.assertEqual(outcome.sample_ads, "")

	def test_unclosed_clarification_stops_at_later_outcome(self) -> None:
		raw = (
			"<clarification_needed><question>Who buys?</question>\n"
			"<full_plan><proposal>Is this a plan? yes</proposal>"
		)
		outcome = parse_model_response(raw)
		self.assertIsInstance(outcome, ClarificationNeeded)
		self.assertEqual(outcome.questions, ("Who buys?",))

	def test_unclosed_untagged_clarification_ignores_cannot_proceed_text(self) -> None:
		raw = (
			"<clarification_needed>\n1. What is the launch date?\n"
			"<cannot_proceed><message>Why was nothing attached?</message>"
		)
		outcome = parse_model_response(raw)
		self.assertEqual(outcome.questions, ("What is the launch date?",))

	def test_tag_attributes_tolerated(self) -> None:
		outcome = parse_model_response('<full_plan version="2"><proposal id="p">X</proposal></full_plan>')
		self.assertIsInstance(outcome, FullPlan)
		self.assertEqual(outcome.proposal, "X")

	def test_clarification_precedes_full_plan(self) -> None:
		raw = (
			"<clarification_needed><questions><question>What is the budget?</question></questions>"
			"</clarification_needed>\n<full_plan><proposal>Should be ignored</proposal></full_plan>"
		)
		outcome = parse_model_response(raw)
		self.assertIsInstance(outcome, ClarificationNeeded)
		self.assertEqual(outcome.questions, ("What is the budget?",))

	def test_full_plan_precedes_cannot_proceed(self) -> None:
		raw = "<cannot_proceed><message>No</message></cannot_proceed><full_plan><proposal>P</proposal>"
		self.assertIsInstance(parse_model_response(raw), FullPlan)

	def test_tagged_questions_deduplicated_case_insensitively(self) -> None:
		raw = (
			"<thinking>Missing budget</thinking>\n<clarification_needed>\n<questions>\n"
			"<question>What is the monthly budget?</question>\n"
			"<question>what is the MONTHLY budget?</question>\n"
			"<question>**Who** is the primary buyer persona?</question>\n"
			"</questions>\n</clarification_needed>"
		)
		outcome = parse_model_response(raw)
		self.assertEqual(
			outcome.questions,
			("What is the monthly budget?", "Who is the primary buyer persona?"),
		)
		self.assertEqual(outcome.thinking, "Missing budget")

	def test_untagged_lines_derive_questions(self) -> None:
		raw = (
			"<clarification_needed>\n<questions>\n"
			"1. What is the quarterly budget\n"
			"2) **Question:** Who approves creative?\n"
			"- Which markets are in scope? Also include regions.\n"
			"</questions>\n</clarification_needed>"
		)
		outcome = parse_model_response(raw)
		self.assertEqual(
			outcome.questions,
			(
				"What is the quarterly budget?",
				"Who approves creative?",
				"Which markets are in scope?",
			),
		)

	def test_prose_lines_become_questions_when_no_question_marks(self) -> None:
		raw = "<clarification_needed>\nPlease share:\n- the monthly budget\n- target launch date.\n</clarification_needed>"
		outcome = parse_model_response(raw)
		self.assertEqual(outcome.questions, ("the monthly budget?", "target launch date?"))

	def test_tagged_and_free_questions_merge_without_duplicates(self) -> None:
		raw = (
			"<clarification_needed><questions>\n<question>Who is the audience?</question>\n"
			"Who is the audience?\nWhat is the budget?\nSome framing text.\n"
			"</questions></clarification_needed>"
		)
		outcome = parse_model_response(raw)
		self.assertEqual(outcome.questions, ("Who is the audience?", "What is the budget?"))

	def test_questions_capped_at_ten(self) -> None:
		body = "".join(f"<question>Question number {i}?</question>" for i in range(15))
		outcome = parse_model_response(f"<clarification_needed><questions>{body}</questions></clarification_needed>")
		self.assertEqual(len(outcome.questions), 10)
		self.assertEqual(outcome.questions[0], "Question number 0?")

	def test_empty_clarification_gets_placeholder(self) -> None:
		outcome = parse_model_response("<clarification_needed>\n<questions>\n</questions>\n</clarification_needed>")
		self.assertIsInstance(outcome, ClarificationNeeded)
		self.assertEqual(outcome.questions, (PLACEHOLDER_QUESTION,))
		self.assertEqual(outcome.as_dict()["questions"], [PLACEHOLDER_QUESTION])

	def test_truncated_clarification_still_parsed(self) -> None:
		outcome = parse_model_response("<clarification_needed><questions><question>Who buys?</question><question>What is")
		self.assertIsInstance(outcome, ClarificationNeeded)
		self.assertEqual(outcome.questions, ("Who buys?",))

	def test_clarification_outcome_never_empty(self) -> None:
		self.assertEqual(ClarificationNeeded(questions=()).questions, (PLACEHOLDER_QUESTION,))

	def test_cannot_proceed_message(self) -> None:
		outcome = parse_model_response("<cannot_proceed><message> Files were unreadable. </message></cannot_proceed>")
		self.assertIsInstance(outcome, CannotProceed)
		self.assertEqual(outcome.message, "Files were unreadable.")
		self.assertIsNone(outcome.thinking)

	def test_cannot_proceed_without_message_uses_default(self) -> None:
		outcome = parse_model_response("<cannot_proceed>nothing usable</cannot_proceed>")
		self.assertEqual(outcome.message, DEFAULT_REFUSAL_MESSAGE)

	def test_cannot_proceed_unclosed_message(self) -> None:
		outcome = parse_model_response("<cannot_proceed><message>Empty submission")
		self.assertEqual(outcome.message, "Empty submission")

	def test_outcome_tag_inside_thinking_is_ignored(self) -> None:
		raw = "<thinking>Maybe <full_plan> later.</thinking><cannot_proceed><message>Unreadable</message></cannot_proceed>"
		outcome = parse_model_response(raw)
		self.assertIsInstance(outcome, CannotProceed)
		self.assertEqual(outcome.thinking, "Maybe <full_plan> later.")

	def test_unclosed_thinking_stops_at_outcome(self) -> None:
		outcome = parse_model_response("<thinking>Reasoning here\n<full_plan><proposal>P</proposal></full_plan>")
		self.assertIsInstance(outcome, FullPlan)
		self.assertEqual(outcome.thinking, "Reasoning here")
		self.assertEqual(outcome.proposal, "P")
