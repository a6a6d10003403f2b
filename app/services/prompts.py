from __future__ import annotations

JSON_ONLY_SYSTEM_PROMPT = "You are a precise assistant. Reply with a single JSON object and nothing else."

_TRUTHFULNESS_RULES = """
Only use content that exists in the original resume:
- Never add technologies, certifications, clearances or domain expertise the resume does not mention.
- Never invent achievements, job titles or metrics. Metrics may be added only when they can be inferred from existing content.
- Rephrase, reorder and emphasise existing content instead.
""".strip()

_FORMAT_RULES = """
Formatting:
- Contact block: one item per line (name, location, phone, email, links). Never join items with pipes.
- Bullets use "-" only. Dates use a plain hyphen ("May 2017 - Oct 2022").
- Section headers are explicit markdown headers (## Summary, ## Experience, ## Skills, ## Education), each used once.
- Never add an "Other Keywords" section or bare keyword lists; keywords belong in full sentences.
- Never name the company being applied to unless it is a past employer.
""".strip()


def keyword_extraction_prompt(job_description: str, industry: str | None = None) -> str:
    industry_line = f"Industry: {industry}\n" if industry else ""
    return f"""Extract the keywords that applicant tracking systems and recruiters will look for in this job description.
{industry_line}
Group them into technical skills, soft skills, industry terms, certifications, action verbs and power words.
For each technical, soft, industry and certification keyword give its importance (critical, high, medium, low),
an importanceScore from 0 to 100, how often it appears and any common synonyms.

Return JSON in exactly this shape:
{{
  "criticalKeywords": ["<the 10-15 terms a recruiter would reject the resume without>"],
  "keywords": {{
    "technical": [{{"term": "", "importance": "critical", "importanceScore": 95, "frequency": 1, "synonyms": []}}],
    "soft": [],
    "industry": [],
    "certifications": [],
    "actionVerbs": [{{"term": "", "frequency": 1}}],
    "powerWords": [{{"term": "", "frequency": 1}}]
  }},
  "recommendations": [{{"keyword": "", "reason": "", "suggestion": ""}}],
  "industry": "<detected or provided industry>",
  "experienceLevel": "<entry|mid|senior|executive>"
}}

Job Description:
{job_description[:8000]}"""


def skills_gap_prompt(resume: str, job_description: str) -> str:
    return f"""Compare the candidate's resume with the job description and analyse the skills gap:
required versus present skills, experience level, education, certifications and industry knowledge.

Return JSON in exactly this shape:
{{
  "matchScore": <0-100>,
  "skills": {{
    "matched": [{{"skill": "", "level": "<beginner|intermediate|advanced|expert>", "evidence": ""}}],
    "missing": [{{"skill": "", "importance": "<critical|high|medium|low>", "alternatives": [], "learningPath": ""}}],
    "extra": [{{"skill": "", "value": ""}}]
  }},
  "experience": {{"required": "", "actual": "", "gap": "", "compensatingFactors": []}},
  "education": {{"required": "", "actual": "", "meetsRequirement": true, "alternatives": []}},
  "certifications": {{"required": [], "held": [], "missing": [], "recommendations": []}},
  "actionPlan": [{{"priority": "<high|medium|low>", "action": "", "timeline": "", "resources": []}}],
  "strengths": [],
  "weaknesses": []
}}

Resume:
{resume[:5000]}

Job Description:
{job_description[:5000]}"""


def resume_validation_prompt(original_resume: str, tailored_resume: str) -> str:
    return f"""Check the tailored resume against the original. Flag anything the tailored version
claims that the original does not support: invented employers, titles, dates, metrics or technologies.
Rewording and reordering of real content is fine.

Return JSON in exactly this shape:
{{
  "isValid": <true if nothing high severity was found>,
  "flaggedItems": [
    {{"type": "<hallucination|fabrication|metric|technology|company>", "description": "", "location": "", "severity": "<low|medium|high>"}}
  ],
  "summary": ""
}}

Original Resume:
{original_resume[:6000]}

Tailored Resume:
{tailored_resume[:6000]}"""


def ats_simulator_prompt(resume: str) -> str:
    return f"""Act as an applicant tracking system such as Workday, Taleo, Greenhouse or Lever and parse this resume.
Report the contact details, skills, work history and education you could extract, every formatting problem
that would break parsing, and an overall ATS compatibility score.

Return JSON in exactly this shape:
{{
  "atsScore": <0-100>,
  "parsedData": {{
    "contactInfo": {{"name": null, "email": null, "phone": null, "location": null}},
    "skills": [],
    "experience": [{{"title": "", "company": "", "dates": "", "description": ""}}],
    "education": [{{"degree": "", "institution": "", "dates": ""}}]
  }},
  "issues": [{{"type": "<formatting|missing|unparseable>", "severity": "<low|medium|high>", "description": "", "recommendation": ""}}],
  "keywords": [],
  "recommendations": []
}}

Resume:
{resume[:10000]}"""


def interview_prep_prompt(job_description: str, resume: str | None = None) -> str:
    resume_block = f"Candidate Resume:\n{resume[:3000]}\n\n" if resume else ""
    return f"""Prepare the candidate for interviews for this role: behavioural questions with a STAR outline,
technical questions, situational questions, questions to ask the interviewer, talking points drawn from the
resume and red flags the candidate should be ready to address.

{resume_block}Return JSON in exactly this shape:
{{
  "behavioral": [{{"question": "", "why": "", "starFramework": {{"situation": "", "task": "", "action": "", "result": ""}}, "tips": []}}],
  "technical": [{{"question": "", "category": "", "difficulty": "<easy|medium|hard>", "answer": "", "resources": []}}],
  "situational": [{{"question": "", "scenario": "", "approach": ""}}],
  "questionsToAsk": [{{"question": "", "category": "<culture|role|growth|team>", "why": ""}}],
  "talkingPoints": [{{"point": "", "evidence": "", "impact": ""}}],
  "redFlags": [{{"issue": "", "howToAddress": "", "positiveSpin": ""}}],
  "interviewTips": []
}}

Job Description:
{job_description[:5000]}"""


def relevancy_commentary_prompt(resume: str, job_description: str, before: int, after: int) -> str:
    return f"""A resume was scored against a job description with a rule-based relevancy score
(before tailoring: {before}/100, after tailoring: {after}/100).
List up to five short, concrete observations explaining the score and what would raise it further.

Return JSON: {{"commentary": ["<observation>"]}}

Resume:
{resume[:5000]}

Job Description:
{job_description[:5000]}"""


def job_title_prompt(job_description: str) -> str:
    return f"""Extract the most appropriate standardised job title from this job description.
Drop seniority words such as "Senior" or "Lead" unless they are essential to the role.
Return JSON: {{"jobTitle": "<title>", "confidence": <1-100>}}

Job Description:
{job_description[:6000]}"""


def diff_explanation_prompt(changes: list[dict[str, str]]) -> str:
    lines = "\n".join(
        f"{index}. [{change['section']}] {change['type']}: {change['text'][:300]}"
        for index, change in enumerate(changes, start=1)
    )
    return f"""Explain briefly, in one sentence each, why these resume edits help the candidate match the job.
Return JSON: {{"explanations": ["<one entry per change, in order>"]}}

Changes:
{lines}"""


def tailoring_prompt(
    *,
    resume: str,
    job_description: str,
    baseline_score: int,
    target_score: int,
    missing_keywords: list[str],
    keyword_context: str = "",
    job_title: str | None = None,
    custom_instructions: str | None = None,
    requested_keywords: list[str] | None = None,
) -> str:
    improvement = max(0, target_score - baseline_score)
    if missing_keywords:
        numbered = "\n".join(f'{index}. "{term}"' for index, term in enumerate(missing_keywords, start=1))
        keyword_block = (
            "Missing keywords to work in naturally, in at least one place each, when they truthfully describe the "
            f"candidate's work (skip any that do not):\n{numbered}"
        )
    else:
        keyword_block = "Work in the key skills, tools and terms of the job description wherever they truthfully apply."

    extras = []
    if keyword_context:
        extras.append(f"Other job keywords: {keyword_context}")
    if requested_keywords:
        extras.append("Keywords the candidate asked to include: " + ", ".join(requested_keywords))
    if job_title:
        extras.append(
            f'Target job title: "{job_title}". Use it only in the Summary; never rename the candidate\'s past roles.'
        )
    if custom_instructions:
        extras.append(f"Candidate instructions: {custom_instructions[:1000]}")
    extras_block = "\n".join(extras)

    return f"""You are an expert resume writer. Rewrite the resume so it matches the job description more closely.
The current job match score is {baseline_score}/100; aim for {target_score}/100 or more ({improvement}+ points).

Keep the result readable and human: vary sentence structure, keep specific implementation details, URLs and
project names, avoid filler such as "results-driven" or "passionate", and write a 3-4 sentence summary derived
only from the resume. Put job keywords into experience bullets, the summary and the skills section, using the
exact terminology of the job description.

{keyword_block}
{extras_block}

{_FORMAT_RULES}

{_TRUTHFULNESS_RULES}

Return JSON:
{{
  "tailoredResume": "<complete resume in markdown>",
  "improvementMetrics": {{
    "quantifiedBulletsAdded": <number>,
    "atsKeywordsMatched": <number>,
    "activeVoiceConversions": <number>,
    "sectionsOptimized": <number>
  }}
}}

Resume:
\"\"\"
{resume}
\"\"\"

Job Description:
\"\"\"
{job_description}
\"\"\""""
