FEEDBACK_CATEGORIES = (
    "searchability",
    "contactInfo",
    "summary",
    "sectionHeadings",
    "jobTitleMatch",
    "dateFormatting",
)


def scan_system_prompt() -> str:
    return (
        "You are an ATS analyzer focused on providing concise, actionable feedback. "
        "Compare the resume to the job posting and provide scores and brief insights for key areas. "
        "Keep all analysis short and mobile-friendly - each section should be 1-2 sentences maximum. "
        "Focus on the most important matches and gaps.\n\n"
        "Key points to analyze:\n"
        "- Overall match and key takeaways\n"
        "- Essential hard skills (technical skills, tools)\n"
        "- Critical soft skills\n"
        "- Experience level match\n"
        "- Must-have qualifications\n"
        "- Key missing keywords\n\n"
        "Additionally, provide detailed category scores and feedback for:\n\n"
        "1. Searchability (0-100 score):\n"
        "   - Check if resume has proper keywords from job description\n"
        "   - Verify if resume format is ATS-friendly\n"
        "   - Check if contact information is complete\n\n"
        "2. Contact Information (pass/fail checks):\n"
        "   - Verify presence of email address\n"
        "   - Verify presence of phone number\n"
        "   - Check for physical address\n\n"
        "3. Summary Section (pass/fail checks):\n"
        "   - Check if resume has a summary/objective section\n"
        "   - Evaluate if summary aligns with job requirements\n\n"
        "4. Section Headings (pass/fail checks):\n"
        '   - Verify if experience section has proper heading ("Work History" or "Professional Experience")\n'
        "   - Check if education section is properly labeled\n\n"
        "5. Job Title Match (pass/fail checks):\n"
        "   - Check if resume contains job titles similar to the one in job description\n"
        "   - Suggest title modifications if needed\n\n"
        "6. Date Formatting (pass/fail checks):\n"
        "   - Verify if work experience dates are properly formatted\n"
        "   - Check for any gaps in employment\n\n"
        "For each category, provide specific issues with a status of 'pass', 'fail', or 'warning' "
        "and optional tips for improvement.\n\n"
        "You MUST return a JSON object exactly in this format:\n"
        "{\n"
        '  "overallMatch": "string",\n'
        '  "hardSkills": "string",\n'
        '  "softSkills": "string",\n'
        '  "experienceMatch": "string",\n'
        '  "qualifications": "string",\n'
        '  "missingKeywords": "string",\n'
        '  "matchScore": number between 0-100,\n'
        '  "categoryScores": {\n'
        '    "searchability": number between 0-100,\n'
        '    "hardSkills": number between 0-100,\n'
        '    "softSkills": number between 0-100,\n'
        '    "recruiterTips": number between 0-100,\n'
        '    "formatting": number between 0-100\n'
        "  },\n"
        '  "categoryFeedback": {\n'
        + ",\n".join(
            f'    "{c}": [{{"issue": "string", "status": "pass|fail|warning", "tip": "string"}}]'
            for c in FEEDBACK_CATEGORIES
        )
        + "\n  }\n"
        "}"
    )


def scan_user_prompt(*, job_title: str | None, company: str | None, job_description: str | None) -> str:
    header = " at ".join(p for p in [(job_title or "").strip(), (company or "").strip()] if p)
    return (
        "Analyze this resume against the following job posting:\n"
        + (f"{header}\n\n" if header else "")
        + f"{job_description or ''}"
    )


def resume_text_extraction_prompt() -> str:
    return (
        "Extract all text content from this PDF file. Include all paragraphs, bullet points, "
        "headers, and any visible text. Maintain the original formatting as much as possible."
    )


def job_listing_system_prompt() -> str:
    return (
        "You are a job description parser that extracts structured information from job listings.\n"
        "Extract the key details from the job description provided and output them in a structured JSON format.\n\n"
        "Extract ONLY what is explicitly mentioned in the text. Do not make up or infer details that aren't clearly stated.\n"
        "For fields that aren't present in the text, use null or empty arrays as appropriate.\n\n"
        "Pay special attention to:\n"
        "1. Company name\n"
        "2. Job title/position\n"
        "3. Location (including remote options)\n"
        "4. Job type (full-time, part-time, contract, etc.)\n"
        "5. Salary information (including range, currency, and payment period)\n"
        "6. Job description (summarize if very long)\n"
        "7. Hard skills - specific technical abilities, tools, programming languages, methodologies, "
        "certifications, or technical knowledge areas (e.g. Python, Excel, Agile, AWS, data analytics)\n"
        "8. Soft skills - interpersonal and transferable attributes such as communication, leadership, "
        "teamwork, problem-solving, adaptability, time management, creativity, and emotional intelligence\n"
        "9. Requirements (extract as an array of clear requirements)\n"
        "10. Benefits (extract as an array of benefits offered)\n\n"
        "Use the following JSON format exactly:\n\n"
        "{\n"
        '  "company": "string",\n'
        '  "title": "string",\n'
        '  "location": "string",\n'
        '  "description": "string",\n'
        '  "job_type": "string",\n'
        '  "salary_range_min": number or null,\n'
        '  "salary_range_max": number or null,\n'
        '  "salary_currency": "string or null",\n'
        '  "salary_period": "string or null",\n'
        '  "hard_skills": string[],\n'
        '  "soft_skills": string[],\n'
        '  "requirements": string[],\n'
        '  "benefits": string[]\n'
        "}\n\n"
        "Keep the full description intact and do not truncate it even if it's long. "
        "Be accurate with your extraction and preserve the original formatting where possible."
    )
